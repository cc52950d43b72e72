"""Error kinds raised by the capture/recognize pipeline.

Every kind carries a stable string code; the HTTP layer returns it as
``error_code`` so the page can tell failures apart.
"""

ERR_PERMISSION_DENIED = "PERMISSION_DENIED"
ERR_DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
ERR_DEVICE_BUSY = "DEVICE_BUSY"
ERR_INVALID_INPUT = "INVALID_INPUT"
ERR_BUSY = "BUSY"
ERR_RECOGNITION_FAILED = "RECOGNITION_FAILED"
ERR_UNKNOWN = "UNKNOWN"


class PipelineError(Exception):
    code = ERR_UNKNOWN

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


# camera acquisition
class PermissionDenied(PipelineError):
    code = ERR_PERMISSION_DENIED


class DeviceUnavailable(PipelineError):
    code = ERR_DEVICE_UNAVAILABLE


class DeviceBusy(PipelineError):
    code = ERR_DEVICE_BUSY


# upload / recognize preconditions
class InvalidInput(PipelineError):
    code = ERR_INVALID_INPUT


class Busy(PipelineError):
    code = ERR_BUSY


class RecognitionFailed(PipelineError):
    code = ERR_RECOGNITION_FAILED

    def __init__(self, message: str = "", detail: str = ""):
        super().__init__(message)
        self.detail = detail
