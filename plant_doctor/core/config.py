# plant_doctor/core/config.py

import os  # 환경 변수를 읽기 위해 사용합니다.


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # JWT 토큰 서명 검증에 사용되는 키. 토큰은 외부 인증 서비스가 같은 키로 발급합니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')

    # 외부 질병 진단 플로우(OpenAI 비전 모델) 설정
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o')
    OPENAI_TIMEOUT_SECONDS = float(os.getenv('OPENAI_TIMEOUT_SECONDS', 60))

    # 진단 재시도 정책: 최대 시도 횟수와 선형 백오프 기본 대기 시간(ms)
    DETECTION_MAX_RETRIES = int(os.getenv('DETECTION_MAX_RETRIES', 3))
    DETECTION_RETRY_DELAY_MS = int(os.getenv('DETECTION_RETRY_DELAY_MS', 1000))

    # 업로드 요청 본문 크기 제한 (data URI로 이미지를 받으므로 16MB)
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다."""
    TESTING = True
    DEBUG = False
    # 테스트에서는 실제 API를 호출하지 않으므로 고정된 값을 사용합니다.
    OPENAI_API_KEY = 'test-openai-key'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    DETECTION_RETRY_DELAY_MS = 0


class ProductionConfig(Config):
    """운영 환경을 위한 설정 클래스입니다."""
    DEBUG = False


# FLASK_ENV 값에 따라 create_app에서 적절한 설정 클래스를 선택하는 데 사용됩니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
