"""
Error taxonomy shared by the capture pipeline, the study session and the
generation service.
"""


class SnapNotesError(Exception):
    """Base error. ``message`` is safe to show to the user."""

    default_message = "Something went wrong"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class CameraPermissionError(SnapNotesError):
    default_message = "Please allow camera access to take photos"


class DeviceError(SnapNotesError):
    default_message = "No usable camera was found"


class InvalidInputError(SnapNotesError):
    default_message = "Please upload an image file"


class RecognitionFailure(SnapNotesError):
    default_message = "Could not extract text from the image"


class GenerationError(SnapNotesError):
    default_message = "Could not generate a response"


class QAInFlightError(GenerationError):
    default_message = "Wait for the current answer before asking another question"


class StudyToolError(SnapNotesError):
    """Raised by the generation service; surfaced as HTTP 500 ``{error}``."""

    default_message = "Unknown error occurred"
