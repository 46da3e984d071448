# plant_doctor/api/diagnosis/schemas.py
from marshmallow import Schema, fields, validate, post_load, EXCLUDE

from plant_doctor.models.diagnosis import DetectDiseaseInput, DiagnosisResult


class DetectDiseaseRequestSchema(Schema):
    """POST /api/diagnoses/detect 진단 요청 스키마."""
    class Meta:
        unknown = EXCLUDE

    photo_data_uri = fields.Str(
        required=True,
        validate=validate.Length(min=1),
        error_messages={"required": "이미지 데이터(photo_data_uri)는 필수입니다."}
    )
    description = fields.Str(required=False, allow_none=True, validate=validate.Length(max=1000))

    @post_load
    def make_input(self, data, **kwargs):
        return DetectDiseaseInput(
            photo_data_uri=data['photo_data_uri'],
            description=data.get('description')
        )


class DetectAndSaveRequestSchema(Schema):
    """
    POST /api/diagnoses 진단 및 저장 요청 스키마.
    image_preview_url이 없으면 photo_data_uri를 기록의 이미지 참조로 사용합니다.
    """
    class Meta:
        unknown = EXCLUDE

    photo_data_uri = fields.Str(
        required=True,
        validate=validate.Length(min=1),
        error_messages={"required": "이미지 데이터(photo_data_uri)는 필수입니다."}
    )
    description = fields.Str(required=False, allow_none=True, validate=validate.Length(max=1000))
    image_preview_url = fields.Str(required=False, allow_none=True)

    @post_load
    def make_request(self, data, **kwargs):
        return {
            'detection_input': DetectDiseaseInput(
                photo_data_uri=data['photo_data_uri'],
                description=data.get('description')
            ),
            'image_ref': data.get('image_preview_url') or data['photo_data_uri']
        }


class DiagnosisSchema(Schema):
    """개별 진단 후보 스키마."""
    class Meta:
        unknown = EXCLUDE

    disease = fields.Str(required=True, validate=validate.Length(min=1))
    confidence = fields.Float(required=True, validate=validate.Range(min=0.0, max=1.0))


class DiagnosisResultSchema(Schema):
    """
    외부 플로우 응답 및 진단 결과 응답 스키마.
    load 시 DiagnosisResult 객체로 변환합니다.
    """
    class Meta:
        unknown = EXCLUDE

    diagnoses = fields.List(fields.Nested(DiagnosisSchema), required=True)

    @post_load
    def make_result(self, data, **kwargs):
        return DiagnosisResult.from_dict(data)


class DiagnosisRecordSchema(Schema):
    """저장된 진단 기록 응답 스키마."""
    id = fields.Str(dump_only=True)
    photo_data_uri = fields.Str()
    timestamp = fields.Str()
    diagnoses = fields.List(fields.Nested(DiagnosisSchema))
    user_id = fields.Str(allow_none=True)


class DiagnosisHistorySchema(Schema):
    """진단 히스토리 목록 응답 스키마."""
    records = fields.List(fields.Nested(DiagnosisRecordSchema), required=True)
    total_count = fields.Int(required=True, validate=validate.Range(min=0))


class CommonIssueSchema(Schema):
    name = fields.Str(required=True)
    count = fields.Int(required=True)


class AnalyticsSummarySchema(Schema):
    """통계 요약 응답 스키마."""
    total_scans = fields.Int(required=True)
    healthy_scans = fields.Int(required=True)
    diseased_scans = fields.Int(required=True)
    common_issues = fields.List(fields.Nested(CommonIssueSchema), required=True)


class ErrorResponseSchema(Schema):
    """
    에러 응답을 위한 스키마
    """
    error_code = fields.Str(required=True)
    message = fields.Str(required=True)
    details = fields.Raw(required=False)


def validation_error_response(err) -> dict:
    """marshmallow ValidationError를 공통 에러 응답 형태로 변환합니다."""
    return ErrorResponseSchema().dump({
        "error_code": "VALIDATION_ERROR",
        "message": "요청 데이터가 유효하지 않습니다.",
        "details": err.messages
    })
