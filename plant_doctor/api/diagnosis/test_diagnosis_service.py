# plant_doctor/api/diagnosis/test_diagnosis_service.py
"""DiagnosisService 재시도/오류 분류/저장 테스트"""

import pytest

from plant_doctor.conftest import FakeDetectionFlow, service_unavailable
from plant_doctor.api.diagnosis.errors import (
    DetectionFlowError,
    ServiceBusyError,
    ContentRejectedError,
    UnprocessableImageError,
    DetectionFailedError,
    UnknownFailureError,
    ErrorKind,
)
from plant_doctor.api.diagnosis.services import (
    DiagnosisService,
    RetryPolicy,
    MAX_RETRIES,
)
from plant_doctor.models.diagnosis import DiagnosisResult
from plant_doctor.utils.datetime_utils import DateTimeUtils


def build_service(flow, history_store, sleep, **policy):
    return DiagnosisService(
        detect_disease=flow,
        history_store=history_store,
        retry_policy=RetryPolicy(**policy),
        sleep=sleep,
    )


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.retry_delay_ms == 1000

    def test_linear_backoff(self):
        policy = RetryPolicy(retry_delay_ms=1000)
        assert [policy.delay_seconds(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_only_transient_errors_are_retried(self):
        policy = RetryPolicy()
        assert policy.should_retry(service_unavailable(), 1)
        assert not policy.should_retry(service_unavailable(), 3)
        assert not policy.should_retry(DetectionFlowError("SAFETY: blocked"), 1)
        assert not policy.should_retry(DetectionFlowError("503 service unavailable"), 1)


class TestPerformDiseaseDetection:
    def test_success_returns_result_unchanged(self, detection_input, history_store, recording_sleep, blight_result):
        flow = FakeDetectionFlow(blight_result)
        service = build_service(flow, history_store, recording_sleep)

        result = service.perform_disease_detection(detection_input)

        assert result is blight_result
        assert all(0.0 <= d.confidence <= 1.0 for d in result.diagnoses)
        assert flow.calls == [detection_input]
        assert recording_sleep.delays == []

    def test_detection_does_not_save(self, detection_input, history_store, recording_sleep, blight_result):
        service = build_service(FakeDetectionFlow(blight_result), history_store, recording_sleep)
        service.perform_disease_detection(detection_input)
        assert history_store.count() == 0

    def test_succeeds_on_third_attempt_after_two_waits(self, detection_input, history_store,
                                                       recording_sleep, blight_result):
        flow = FakeDetectionFlow(service_unavailable(), service_unavailable(), blight_result)
        service = build_service(flow, history_store, recording_sleep)

        result = service.perform_disease_detection(detection_input)

        assert result is blight_result
        assert len(flow.calls) == 3
        assert recording_sleep.delays == [1.0, 2.0]

    def test_always_unavailable_exhausts_retries(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(service_unavailable())
        service = build_service(flow, history_store, recording_sleep)

        with pytest.raises(ServiceBusyError) as exc_info:
            service.perform_disease_detection(detection_input)

        assert len(flow.calls) == MAX_RETRIES
        assert recording_sleep.delays == [1.0, 2.0]
        assert exc_info.value.kind is ErrorKind.SERVICE_BUSY
        assert exc_info.value.message == (
            "The Plant Analysis Service is currently busy. Please try again in a few moments."
        )

    def test_safety_error_fails_immediately(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(DetectionFlowError("Response blocked: SAFETY"), DiagnosisResult())
        service = build_service(flow, history_store, recording_sleep)

        with pytest.raises(ContentRejectedError):
            service.perform_disease_detection(detection_input)

        assert len(flow.calls) == 1
        assert recording_sleep.delays == []

    def test_invalid_media_fails_immediately(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(DetectionFlowError("Invalid media: unsupported mime type"))
        service = build_service(flow, history_store, recording_sleep)

        with pytest.raises(UnprocessableImageError):
            service.perform_disease_detection(detection_input)
        assert len(flow.calls) == 1

    def test_generic_error_is_wrapped(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(ValueError("model returned garbage"))
        service = build_service(flow, history_store, recording_sleep)

        with pytest.raises(DetectionFailedError) as exc_info:
            service.perform_disease_detection(detection_input)

        assert exc_info.value.message == "Failed to detect disease: model returned garbage"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_error_without_message_is_unknown(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(RuntimeError())
        service = build_service(flow, history_store, recording_sleep)

        with pytest.raises(UnknownFailureError):
            service.perform_disease_detection(detection_input)

    def test_transient_then_permanent_failure(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(service_unavailable(), DetectionFlowError("SAFETY: blocked"))
        service = build_service(flow, history_store, recording_sleep)

        with pytest.raises(ContentRejectedError):
            service.perform_disease_detection(detection_input)

        assert len(flow.calls) == 2
        assert recording_sleep.delays == [1.0]

    def test_custom_policy(self, detection_input, history_store, recording_sleep):
        flow = FakeDetectionFlow(service_unavailable())
        service = build_service(flow, history_store, recording_sleep, max_retries=5, retry_delay_ms=200)

        with pytest.raises(ServiceBusyError):
            service.perform_disease_detection(detection_input)

        assert len(flow.calls) == 5
        assert recording_sleep.delays == pytest.approx([0.2, 0.4, 0.6, 0.8])

    def test_input_is_not_mutated(self, detection_input, history_store, recording_sleep, blight_result):
        before = (detection_input.photo_data_uri, detection_input.description)
        service = build_service(FakeDetectionFlow(blight_result), history_store, recording_sleep)
        service.perform_disease_detection(detection_input)
        assert (detection_input.photo_data_uri, detection_input.description) == before


class TestPerformDiseaseDetectionAndSave:
    def test_saves_record_on_success(self, detection_input, history_store, recording_sleep, blight_result):
        service = build_service(FakeDetectionFlow(blight_result), history_store, recording_sleep)

        result = service.perform_disease_detection_and_save(detection_input, "https://cdn/preview.png")

        assert result is blight_result
        history = service.get_diagnosis_history()
        assert len(history) == 1
        record = history[0]
        assert record.photo_data_uri == "https://cdn/preview.png"
        assert record.diagnoses == blight_result.diagnoses
        assert record.user_id is None
        assert record.id
        # ISO 포맷: YYYY-MM-DDTHH:MM:SS...Z
        assert DateTimeUtils.parse_iso_datetime(record.timestamp).tzinfo is not None

    def test_records_user_id(self, detection_input, history_store, recording_sleep):
        service = build_service(FakeDetectionFlow(DiagnosisResult()), history_store, recording_sleep)
        service.perform_disease_detection_and_save(detection_input, "img", user_id="user-1")
        assert service.get_diagnosis_history()[0].user_id == "user-1"

    def test_ids_are_unique(self, detection_input, history_store, recording_sleep):
        service = build_service(FakeDetectionFlow(DiagnosisResult()), history_store, recording_sleep)
        for _ in range(20):
            service.perform_disease_detection_and_save(detection_input, "img")
        assert len({record.id for record in service.get_diagnosis_history()}) == 20

    def test_failed_detection_saves_nothing(self, detection_input, history_store, recording_sleep):
        service = build_service(FakeDetectionFlow(service_unavailable()), history_store, recording_sleep)

        with pytest.raises(ServiceBusyError):
            service.perform_disease_detection_and_save(detection_input, "img")

        assert history_store.count() == 0

    def test_saved_after_retry(self, detection_input, history_store, recording_sleep, blight_result):
        flow = FakeDetectionFlow(service_unavailable(), blight_result)
        service = build_service(flow, history_store, recording_sleep)

        service.perform_disease_detection_and_save(detection_input, "img")

        assert history_store.count() == 1
        assert recording_sleep.delays == [1.0]

    def test_analytics_summary(self, detection_input, history_store, recording_sleep, blight_result):
        flow = FakeDetectionFlow(DiagnosisResult(), blight_result)
        service = build_service(flow, history_store, recording_sleep)
        service.perform_disease_detection_and_save(detection_input, "img-1")
        service.perform_disease_detection_and_save(detection_input, "img-2")

        summary = service.get_analytics_summary()

        assert summary.total_scans == 2
        assert summary.healthy_scans == 1
        assert summary.diseased_scans == 1
        assert [issue.name for issue in summary.common_issues] == ["Late Blight", "Septoria Leaf Spot"]
