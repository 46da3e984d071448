# plant_doctor/services/openai_service.py
import json
import logging
from flask import Flask
from marshmallow import ValidationError
from openai import OpenAI, APIStatusError, APIConnectionError

from plant_doctor.api.diagnosis.errors import (
    DetectionFlowError,
    SERVICE_UNAVAILABLE_MARKER,
    SAFETY_MARKER,
    INVALID_MEDIA_MARKER,
)
from plant_doctor.api.diagnosis.schemas import DiagnosisResultSchema
from plant_doctor.models.diagnosis import DetectDiseaseInput, DiagnosisResult

logger = logging.getLogger(__name__)

CONTENT_POLICY_CODES = {"content_policy_violation", "content_filter"}
INVALID_IMAGE_CODES = {"invalid_image", "invalid_image_url", "image_parse_error", "invalid_image_format"}
INVALID_IMAGE_PHRASES = ("invalid image", "unsupported image", "could not process image", "image format")

DETECTION_PROMPT = """You are an expert plant pathologist. Analyze the plant in this image and
identify any diseases, pests or deficiencies that are visible.

Respond ONLY with a JSON object of the form:
{"diagnoses": [{"disease": "<name>", "confidence": <number between 0 and 1>}]}

- List candidate diseases from most to least likely.
- Use an empty "diagnoses" list if the plant looks healthy.
- Do not include any other keys or text."""


def _mentions_invalid_image(message: str) -> bool:
    lowered = message.lower()
    return any(phrase in lowered for phrase in INVALID_IMAGE_PHRASES)


class OpenAIService:
    """
    OpenAI API 연동을 담당하는 서비스 클래스.
    식물 이미지를 비전 모델로 분석하여 질병 후보 목록을 반환하는 외부 진단 플로우 역할을 합니다.

    오케스트레이터는 오류 메시지의 문자열 표식으로 실패를 분류하므로,
    이 클래스는 OpenAI 오류를 표식이 담긴 DetectionFlowError로 변환합니다.
    """

    def __init__(self):
        """
        OpenAI 클라이언트를 None으로 초기화합니다.
        실제 클라이언트는 init_app 메서드를 통해 설정됩니다.
        """
        self.client = None
        self.model = None

    def init_app(self, app: Flask):
        """
        Flask 앱 초기화 과정에서 호출되어 OpenAI 클라이언트를 설정합니다.

        :param app: Flask 애플리케이션 객체
        """
        api_key = app.config.get('OPENAI_API_KEY')
        if not api_key:
            raise ValueError("OPENAI_API_KEY 설정이 .env 파일에 필요합니다.")

        # 재시도는 DiagnosisService가 담당하므로 클라이언트 자체 재시도는 끕니다.
        self.client = OpenAI(
            api_key=api_key,
            timeout=app.config.get('OPENAI_TIMEOUT_SECONDS', 60),
            max_retries=0
        )
        self.model = app.config.get('OPENAI_MODEL', 'gpt-4o')
        logging.info(f"OpenAIService: OpenAI API 서비스가 성공적으로 초기화되었습니다. (model={self.model})")

    def detect_disease(self, detection_input: DetectDiseaseInput) -> DiagnosisResult:
        """
        식물 이미지를 분석하여 질병 후보와 신뢰도를 반환합니다.

        :param detection_input: 이미지 data URI와 선택적 식물 설명
        :return: DiagnosisResult
        :raises DetectionFlowError: API 호출 또는 응답 해석에 실패한 경우
        """
        if not self.client:
            raise RuntimeError("OpenAIService가 초기화되지 않았습니다. init_app을 먼저 호출해주세요.")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "text",
                                "text": self._build_prompt(detection_input.description)
                            },
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": detection_input.photo_data_uri
                                }
                            }
                        ]
                    }
                ],
                response_format={"type": "json_object"},
                max_tokens=500
            )
        except APIStatusError as e:
            raise self._translate_status_error(e) from e
        except APIConnectionError as e:
            raise DetectionFlowError(f"OpenAI API 연결 실패: {e}") from e

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise DetectionFlowError(f"{SAFETY_MARKER}: 모델 응답이 콘텐츠 필터에 의해 차단되었습니다.")

        return self._parse_result(choice.message.content)

    def _build_prompt(self, description: str = None) -> str:
        if description and description.strip():
            return DETECTION_PROMPT + f"\n\nPlant description from the user: {description.strip()}"
        return DETECTION_PROMPT

    @staticmethod
    def _translate_status_error(error: APIStatusError) -> DetectionFlowError:
        """OpenAI HTTP 오류를 오케스트레이터가 인식하는 표식 메시지로 변환합니다."""
        code = getattr(error, 'code', None) or ''
        message = getattr(error, 'message', None) or str(error)

        if error.status_code == 503:
            return DetectionFlowError(f"{SERVICE_UNAVAILABLE_MARKER}: {message}")
        if code in CONTENT_POLICY_CODES:
            return DetectionFlowError(f"{SAFETY_MARKER}: {message}")
        if error.status_code == 400 and (code in INVALID_IMAGE_CODES or _mentions_invalid_image(message)):
            return DetectionFlowError(f"{INVALID_MEDIA_MARKER}: {message}")
        return DetectionFlowError(f"[{error.status_code}] {message}")

    @staticmethod
    def _parse_result(content: str) -> DiagnosisResult:
        """모델의 JSON 응답을 검증하여 DiagnosisResult로 변환합니다."""
        try:
            payload = json.loads(content or '')
            return DiagnosisResultSchema().load(payload)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.error(f"모델 응답 해석 실패: {e} (content={content!r})")
            raise DetectionFlowError(f"Invalid model output: {e}") from e
