"""
Exception hierarchy shared by the BPMN reader, the CACAO converter,
the command line tool and the HTTP service.
"""


class BpmnToCacaoError(Exception):
    """Base class for all conversion related errors."""


class BpmnParseError(BpmnToCacaoError):
    """Raised when the input is not a readable BPMN 2.0 document."""


class ConversionError(BpmnToCacaoError):
    """Raised when a BPMN document cannot be turned into a playbook."""


class ProcessCountError(ConversionError):
    """Raised when a document does not contain exactly one process."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"unexpected number of process definitions: {count}")


class UnsupportedSpecVersionError(ConversionError):
    """Raised for a CACAO spec version the converter has no step vocabulary for."""

    def __init__(self, spec_version: str):
        self.spec_version = spec_version
        super().__init__(f"unsupported CACAO spec version: {spec_version!r}")
