# plant_doctor/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from flask import Flask, jsonify
from marshmallow import ValidationError
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

# - 설정
from plant_doctor.core.config import config_by_name

# - API 블루프린트
from plant_doctor.api.diagnosis.routes import diagnosis_bp
from plant_doctor.api.health.routes import health_bp

# - 서비스 모듈
from plant_doctor.services import openai_service as openai_service_module
from plant_doctor.services.history_store import HistoryStore
from plant_doctor.api.diagnosis.services import DiagnosisService, RetryPolicy
from plant_doctor.api.diagnosis.schemas import validation_error_response


def create_app(config_name: str = None):
    """
    Flask 애플리케이션 팩토리 함수.

    :param config_name: 'development' | 'testing' | 'production' (기본값: FLASK_ENV)
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    if not app.config.get('JWT_SECRET_KEY'):
        raise ValueError("JWT_SECRET_KEY 설정이 .env 파일에 필요합니다.")
    JWTManager(app)

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    try:
        openai_instance = openai_service_module.OpenAIService()
        openai_instance.init_app(app)
        app.services['openai'] = openai_instance
        logging.info("OpenAI service initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize OpenAI service: {e}")
        raise

    # 진단 히스토리는 프로세스 메모리에만 보관되며 앱당 하나의 저장소를 사용합니다.
    app.services['history'] = HistoryStore()

    app.services['diagnosis'] = DiagnosisService(
        detect_disease=app.services['openai'].detect_disease,
        history_store=app.services['history'],
        retry_policy=RetryPolicy(
            max_retries=app.config['DETECTION_MAX_RETRIES'],
            retry_delay_ms=app.config['DETECTION_RETRY_DELAY_MS']
        )
    )
    logging.info("Diagnosis service initialized successfully")

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(diagnosis_bp, url_prefix='/api/diagnoses')
    app.register_blueprint(health_bp, url_prefix='/api/health')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        return jsonify(validation_error_response(err)), 400

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        if isinstance(err, HTTPException):
            return err
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
