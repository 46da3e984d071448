# plant_doctor/api/health/routes.py
from flask import Blueprint, jsonify

health_bp = Blueprint('health_bp', __name__)


@health_bp.route('', methods=['GET'])
def health_check():
    """로드밸런서/모니터링용 헬스 체크."""
    return jsonify({"status": "ok"}), 200
