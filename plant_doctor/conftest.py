# plant_doctor/conftest.py
"""pytest 공용 fixture 모음."""

import pytest

from plant_doctor import create_app
from plant_doctor.api.diagnosis.errors import DetectionFlowError
from plant_doctor.api.diagnosis.services import DiagnosisService, RetryPolicy
from plant_doctor.models.diagnosis import (
    DetectDiseaseInput,
    Diagnosis,
    DiagnosisResult,
    DiagnosisRecord,
)
from plant_doctor.services.history_store import HistoryStore

SAMPLE_DATA_URI = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk"


class FakeDetectionFlow:
    """
    외부 진단 플로우 대역.
    outcomes에 넣은 순서대로 결과를 반환하거나 예외를 발생시키며, 마지막 항목은 계속 반복됩니다.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [DiagnosisResult()]
        self.calls = []

    def __call__(self, detection_input):
        self.calls.append(detection_input)
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    """time.sleep 대신 대기 시간만 기록합니다."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


def service_unavailable():
    return DetectionFlowError("503 Service Unavailable: The model is overloaded. Please try again later.")


def make_record(record_id, diagnoses=(), photo="data:image/png;base64,AAAA", user_id=None):
    return DiagnosisRecord(
        id=record_id,
        photo_data_uri=photo,
        timestamp="2024-01-15T10:30:00Z",
        diagnoses=tuple(Diagnosis(name, confidence) for name, confidence in diagnoses),
        user_id=user_id,
    )


@pytest.fixture
def blight_result():
    return DiagnosisResult(diagnoses=(
        Diagnosis(disease="Late Blight", confidence=0.91),
        Diagnosis(disease="Septoria Leaf Spot", confidence=0.34),
    ))


@pytest.fixture
def detection_input():
    return DetectDiseaseInput(photo_data_uri=SAMPLE_DATA_URI, description="Tomato leaves with brown spots")


@pytest.fixture
def history_store():
    return HistoryStore()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def app():
    """TestingConfig로 생성한 앱. 진단 플로우는 각 테스트에서 fake로 교체합니다."""
    app = create_app('testing')
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def install_flow(app, recording_sleep):
    """앱의 DiagnosisService를 fake 플로우를 사용하는 인스턴스로 교체합니다."""
    def _install(*outcomes):
        flow = FakeDetectionFlow(*outcomes)
        app.services['diagnosis'] = DiagnosisService(
            detect_disease=flow,
            history_store=app.services['history'],
            retry_policy=RetryPolicy(),
            sleep=recording_sleep,
        )
        return flow
    return _install
