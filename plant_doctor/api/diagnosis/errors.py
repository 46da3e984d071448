# plant_doctor/api/diagnosis/errors.py
from enum import Enum

# 외부 플로우의 오류 메시지에 포함되는 표식(대소문자 구분).
# 플로우가 구조화된 오류 코드를 제공하지 않으므로 메시지 문자열이 곧 계약입니다.
SERVICE_UNAVAILABLE_MARKER = "503 Service Unavailable"
SAFETY_MARKER = "SAFETY"
INVALID_MEDIA_MARKER = "Invalid media"


class ErrorKind(Enum):
    SERVICE_BUSY = "SERVICE_BUSY"
    CONTENT_REJECTED = "CONTENT_REJECTED"
    UNPROCESSABLE_IMAGE = "UNPROCESSABLE_IMAGE"
    DETECTION_FAILED = "DETECTION_FAILED"
    UNKNOWN_FAILURE = "UNKNOWN_FAILURE"


class DetectionFlowError(Exception):
    """외부 질병 진단 플로우가 실패했을 때 발생하는 오류. 메시지에 위 표식을 담습니다."""


class DiagnosisError(Exception):
    """
    오케스트레이터 경계에서 분류된 최종 오류.
    UI는 message를 그대로 사용자에게 보여줍니다.
    """
    kind = ErrorKind.DETECTION_FAILED
    status_code = 500
    default_message = "Failed to detect disease."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error_code": self.kind.value, "message": self.message}


class ServiceBusyError(DiagnosisError):
    kind = ErrorKind.SERVICE_BUSY
    status_code = 503
    default_message = "The Plant Analysis Service is currently busy. Please try again in a few moments."


class ContentRejectedError(DiagnosisError):
    kind = ErrorKind.CONTENT_REJECTED
    status_code = 422
    default_message = ("The analysis could not be completed due to content safety filters. "
                       "Try a different image or adjust your plant description.")


class UnprocessableImageError(DiagnosisError):
    kind = ErrorKind.UNPROCESSABLE_IMAGE
    status_code = 422
    default_message = ("The uploaded image could not be processed. "
                       "Please try a different image format or a clearer picture.")


class DetectionFailedError(DiagnosisError):
    kind = ErrorKind.DETECTION_FAILED
    status_code = 502

    def __init__(self, original_message: str):
        self.original_message = original_message
        super().__init__(f"Failed to detect disease: {original_message}")


class UnknownFailureError(DiagnosisError):
    kind = ErrorKind.UNKNOWN_FAILURE
    status_code = 500
    default_message = "An unknown error occurred during disease detection."


def is_transient(error: BaseException) -> bool:
    """일시적인 서비스 불가(503) 오류인지 확인합니다. 재시도 대상은 이 경우뿐입니다."""
    return SERVICE_UNAVAILABLE_MARKER in str(error)


def classify_error(error: BaseException) -> DiagnosisError:
    """
    최종 실패한 오류를 사용자용 DiagnosisError로 변환합니다.

    :param error: 외부 플로우 호출 중 발생한 예외
    :return: 분류된 DiagnosisError 인스턴스
    """
    if isinstance(error, DiagnosisError):
        return error

    message = str(error)
    if not message:
        # 메시지가 없는 예외는 분류할 근거가 없습니다.
        return UnknownFailureError()
    if SERVICE_UNAVAILABLE_MARKER in message:
        return ServiceBusyError()
    if SAFETY_MARKER in message:
        return ContentRejectedError()
    if INVALID_MEDIA_MARKER in message:
        return UnprocessableImageError()
    return DetectionFailedError(message)
