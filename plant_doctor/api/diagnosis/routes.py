# plant_doctor/api/diagnosis/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from .errors import DiagnosisError
from .schemas import (
    DetectDiseaseRequestSchema,
    DetectAndSaveRequestSchema,
    DiagnosisResultSchema,
    DiagnosisHistorySchema,
    AnalyticsSummarySchema,
    ErrorResponseSchema,
    validation_error_response
)

logger = logging.getLogger(__name__)

diagnosis_bp = Blueprint('diagnosis_bp', __name__)


def _get_json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("요청 본문이 비어있거나 JSON 형식이 아닙니다.")
    return data


@diagnosis_bp.route('/detect', methods=['POST'])
def detect_disease():
    """
    업로드된 식물 이미지의 질병을 진단합니다. 결과는 히스토리에 저장하지 않습니다.

    Body:
        - photo_data_uri (str, required): 이미지 data URI
        - description (str, optional): 식물 설명
    """
    diagnosis_service = current_app.services['diagnosis']
    try:
        detection_input = DetectDiseaseRequestSchema().load(_get_json_body())
    except ValidationError as err:
        return jsonify(validation_error_response(err)), 400

    result = diagnosis_service.perform_disease_detection(detection_input)
    return jsonify(DiagnosisResultSchema().dump(result)), 200


@diagnosis_bp.route('', methods=['POST'])
@jwt_required(optional=True)
def detect_and_save_disease():
    """
    식물 이미지의 질병을 진단하고, 성공하면 진단 기록을 히스토리에 저장합니다.
    유효한 JWT가 함께 전달되면 기록에 사용자 ID를 남깁니다.

    Body:
        - photo_data_uri (str, required): 이미지 data URI
        - description (str, optional): 식물 설명
        - image_preview_url (str, optional): 기록에 남길 이미지 참조 (기본값: photo_data_uri)
    """
    diagnosis_service = current_app.services['diagnosis']
    try:
        data = DetectAndSaveRequestSchema().load(_get_json_body())
    except ValidationError as err:
        return jsonify(validation_error_response(err)), 400

    result = diagnosis_service.perform_disease_detection_and_save(
        data['detection_input'], data['image_ref'], user_id=get_jwt_identity()
    )
    return jsonify(DiagnosisResultSchema().dump(result)), 200


@diagnosis_bp.route('/history', methods=['GET'])
def get_diagnosis_history():
    """저장된 진단 기록을 최신순으로 조회합니다."""
    diagnosis_service = current_app.services['diagnosis']
    try:
        records = diagnosis_service.get_diagnosis_history()
        result = {
            'records': records,
            'total_count': len(records)
        }
        return jsonify(DiagnosisHistorySchema().dump(result)), 200
    except Exception as e:
        logger.error(f"진단 히스토리 조회 실패: {e}", exc_info=True)
        return jsonify({
            "error_code": "HISTORY_FETCH_FAILED",
            "message": "진단 기록을 조회하는 중 오류가 발생했습니다."
        }), 500


@diagnosis_bp.route('/analytics', methods=['GET'])
def get_analytics_summary():
    """진단 히스토리로부터 계산한 통계 요약을 조회합니다."""
    diagnosis_service = current_app.services['diagnosis']
    try:
        summary = diagnosis_service.get_analytics_summary()
        return jsonify(AnalyticsSummarySchema().dump(summary)), 200
    except Exception as e:
        logger.error(f"통계 요약 조회 실패: {e}", exc_info=True)
        return jsonify({
            "error_code": "ANALYTICS_FETCH_FAILED",
            "message": "통계 정보를 조회하는 중 오류가 발생했습니다."
        }), 500


@diagnosis_bp.errorhandler(DiagnosisError)
def handle_diagnosis_error(error: DiagnosisError):
    """분류된 진단 오류를 사용자용 메시지와 함께 반환합니다."""
    return jsonify(ErrorResponseSchema().dump(error.to_dict())), error.status_code
