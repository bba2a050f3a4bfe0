"""CLI-specific exceptions with Rich display support."""

from typing import List, Optional


class SubsetFlowCLIError(Exception):
    """Base exception for CLI operations with Rich display support."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        self.message = message
        self.suggestions = suggestions or []
        super().__init__(message)


class ParameterParsingError(SubsetFlowCLIError):
    """Raised when a --param value is not of the form name=value."""

    def __init__(self, parameter_string: str, parse_error: str):
        self.parameter_string = parameter_string
        self.parse_error = parse_error
        message = f"Failed to parse parameter '{parameter_string}': {parse_error}"
        suggestions = ["Example: --param eventid=1001,1002"]
        super().__init__(message, suggestions)


class MissingSubsetKeyError(SubsetFlowCLIError):
    """Raised when codes are given but the profile cannot resolve them."""

    def __init__(self, profile_path: str):
        self.profile_path = profile_path
        message = f"Profile '{profile_path}' has no 'subset_key' section"
        suggestions = [
            "Add a 'subset_key' section with the parameter the codes resolve to",
            "Or pass key values directly with --param",
        ]
        super().__init__(message, suggestions)


class MissingSubsetCodesError(SubsetFlowCLIError):
    """Raised when a profile with a subset_key is run without codes or key values."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        message = f"No subset codes given and '{parameter}' is not set"
        suggestions = [
            "Pass one or more subset codes after the profile path",
            f"Or pass key values directly with --param {parameter}=...",
        ]
        super().__init__(message, suggestions)
