"""Tests for CLI errors module."""

from subsetflow.cli.errors import (
    MissingSubsetCodesError,
    MissingSubsetKeyError,
    ParameterParsingError,
    SubsetFlowCLIError,
)


class TestSubsetFlowCLIError:
    def test_basic_error_creation(self):
        error = SubsetFlowCLIError("test message")
        assert str(error) == "test message"
        assert error.message == "test message"
        assert error.suggestions == []

    def test_error_with_suggestions(self):
        error = SubsetFlowCLIError("test message", ["try this"])
        assert error.suggestions == ["try this"]


class TestParameterParsingError:
    def test_message(self):
        error = ParameterParsingError("eventid", "expected name=value")
        assert error.message == "Failed to parse parameter 'eventid': expected name=value"
        assert error.parameter_string == "eventid"
        assert error.suggestions


class TestMissingSubsetKeyError:
    def test_message(self):
        error = MissingSubsetKeyError("subset.yml")
        assert "subset.yml" in str(error)
        assert len(error.suggestions) == 2


class TestMissingSubsetCodesError:
    def test_message_names_the_key(self):
        error = MissingSubsetCodesError("eventid")
        assert error.message == "No subset codes given and 'eventid' is not set"
        assert "--param eventid=..." in error.suggestions[1]
