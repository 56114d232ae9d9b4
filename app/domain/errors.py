class PipelineError(Exception):
    """Base class for every failure the pipeline can surface to the user."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class DeviceUnavailable(PipelineError):
    default_message = "Could not access camera. Please check permissions."


class InvalidImage(PipelineError):
    default_message = "The selected file is empty or is not a readable image."


class Busy(PipelineError):
    default_message = "A recognition request is already in progress."


class RecognitionFailure(PipelineError):
    default_message = "Failed to process image. Please try again."


class SchemaViolation(PipelineError):
    default_message = "The recognition service returned an unexpected response."
