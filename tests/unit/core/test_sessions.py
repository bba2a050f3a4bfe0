from subsetflow.core.sessions import SessionTerminator


class TestSessionTerminator:
    def test_kills_other_sessions(self, fake_session):
        fake_session.on("sys_context", "12")
        fake_session.on("from v$session", [(12, 1), (40, 7), (41, 9)])

        killed = SessionTerminator().terminate(fake_session, "jade")

        assert killed == [(40, 7), (41, 9)]
        assert fake_session.executed == [
            "alter system kill session '40,7'",
            "alter system kill session '41,9'",
        ]
        assert fake_session.commits == 1

    def test_username_is_upper_cased(self, fake_session):
        fake_session.on("sys_context", 1)

        SessionTerminator().terminate(fake_session, "jade")

        queries = [params for kind, _, params in fake_session.log if kind == "query"]
        assert queries == [{"username": "JADE"}]

    def test_vanished_session_is_skipped(self, fake_session, caplog):
        fake_session.on("sys_context", 1)
        fake_session.on("from v$session", [(40, 7), (41, 9)])
        fake_session.fail("'40,7'", "ORA-00030", "User session ID does not exist.")

        killed = SessionTerminator().terminate(fake_session, "JADE")

        assert killed == [(41, 9)]
        assert "Could not kill session 40,7" in caplog.text
