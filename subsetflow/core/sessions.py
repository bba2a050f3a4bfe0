"""Termination of a database user's sessions.

Used before a run so that application connections do not hold locks on the
schemas being dropped. The caller's own session is never killed.
"""

from typing import Any, List, Tuple

from subsetflow.exceptions import StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

USER_SESSIONS_SQL = "select sid, serial# from v$session where username = :username"
OWN_SID_SQL = "select sys_context('USERENV', 'SID') from dual"


class SessionTerminator:
    def list_sessions(self, session: Any, username: str) -> List[Tuple[int, int]]:
        rows = session.query(USER_SESSIONS_SQL, {"username": username.upper()})
        return [(int(sid), int(serial)) for sid, serial in rows]

    def own_sid(self, session: Any) -> int:
        return int(session.scalar(OWN_SID_SQL))

    def terminate(self, session: Any, username: str) -> List[Tuple[int, int]]:
        """Kill every session of ``username`` except our own.

        Sessions that disappear before they can be killed are logged and
        skipped.

        Returns:
            The ``(sid, serial#)`` pairs that were killed
        """
        my_sid = self.own_sid(session)
        killed: List[Tuple[int, int]] = []

        for sid, serial in self.list_sessions(session, username):
            if sid == my_sid:
                continue
            sql = f"alter system kill session '{sid},{serial}'"
            logger.info(sql)
            try:
                session.execute(sql)
            except StatementError as e:
                logger.warning(f"Could not kill session {sid},{serial}: {e.message}")
                continue
            killed.append((sid, serial))

        session.commit()
        logger.info(f"Killed {len(killed)} sessions for {username.upper()}")
        return killed
