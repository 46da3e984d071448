# plant_doctor/api/diagnosis/services.py
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from plant_doctor.models.diagnosis import (
    DetectDiseaseInput,
    DiagnosisResult,
    DiagnosisRecord,
    AnalyticsSummary,
)
from plant_doctor.services.history_store import HistoryStore
from plant_doctor.utils.datetime_utils import DateTimeUtils
from .errors import classify_error, is_transient

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_MS = 1000


class AttemptState(Enum):
    ATTEMPTING = "ATTEMPTING"
    RETRYING = "RETRYING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RetryPolicy:
    """
    외부 진단 플로우 호출의 재시도 정책.
    503 계열의 일시적 오류만 재시도하며, 대기 시간은 시도 횟수에 비례(선형 백오프)합니다.
    """
    max_retries: int = MAX_RETRIES
    retry_delay_ms: int = RETRY_DELAY_MS

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return is_transient(error) and attempt < self.max_retries

    def delay_seconds(self, attempt: int) -> float:
        """attempt번째 시도가 실패한 뒤 다음 시도 전까지 대기할 시간(초)."""
        return self.retry_delay_ms * attempt / 1000.0


@dataclass
class DetectionAttempt:
    """단일 detect 호출의 진행 상태. 시도 번호와 최종 상태를 데이터로 보관합니다."""
    attempt: int = 1
    state: AttemptState = AttemptState.ATTEMPTING
    last_error: Optional[BaseException] = None


class DiagnosisService:
    """
    질병 진단 오케스트레이터.
    외부 진단 플로우를 재시도 정책에 따라 호출하고, 실패를 사용자용 오류로 분류하며,
    성공한 결과를 히스토리 저장소에 기록합니다.
    """

    def __init__(self,
                 detect_disease: Callable[[DetectDiseaseInput], DiagnosisResult],
                 history_store: HistoryStore,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.detect_disease = detect_disease
        self.history_store = history_store
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        logger.info(f"DiagnosisService initialized (max_retries={self.retry_policy.max_retries}, "
                    f"retry_delay_ms={self.retry_policy.retry_delay_ms}).")

    def perform_disease_detection(self, detection_input: DetectDiseaseInput) -> DiagnosisResult:
        """
        외부 플로우로 질병을 진단합니다.

        :param detection_input: 이미지 참조와 선택적 설명
        :return: 플로우가 반환한 DiagnosisResult (변경 없이 그대로)
        :raises DiagnosisError: 재시도 후에도 실패한 경우, 분류된 오류
        """
        progress = DetectionAttempt()

        while progress.state in (AttemptState.ATTEMPTING, AttemptState.RETRYING):
            progress.state = AttemptState.ATTEMPTING
            try:
                result = self.detect_disease(detection_input)
                progress.state = AttemptState.SUCCEEDED
            except Exception as e:
                progress.last_error = e
                logger.warning(f"질병 진단 실패 (attempt {progress.attempt}/{self.retry_policy.max_retries}): {e}")

                if self.retry_policy.should_retry(e, progress.attempt):
                    progress.state = AttemptState.RETRYING
                    delay = self.retry_policy.delay_seconds(progress.attempt)
                    logger.info(f"{delay:.1f}초 후 재시도합니다. (다음 attempt {progress.attempt + 1})")
                    self.sleep(delay)
                    progress.attempt += 1
                else:
                    progress.state = AttemptState.FAILED

        if progress.state is AttemptState.FAILED:
            error = classify_error(progress.last_error)
            logger.error(f"질병 진단 최종 실패 [{error.kind.value}] after {progress.attempt} attempt(s): "
                         f"{progress.last_error}")
            raise error from progress.last_error

        logger.info(f"질병 진단 성공 (attempt {progress.attempt}): {len(result.diagnoses)}개 후보")
        return result

    def perform_disease_detection_and_save(self, detection_input: DetectDiseaseInput,
                                           image_ref: str,
                                           user_id: Optional[str] = None) -> DiagnosisResult:
        """
        질병을 진단하고, 성공하면 진단 기록을 히스토리에 저장한 뒤 결과를 반환합니다.
        실패한 진단은 기록을 남기지 않습니다.
        """
        result = self.perform_disease_detection(detection_input)

        record = DiagnosisRecord.from_result(
            record_id=uuid.uuid4().hex,
            result=result,
            photo_data_uri=image_ref,
            timestamp=DateTimeUtils.now_iso(),
            user_id=user_id,
        )
        self.history_store.append(record)
        return result

    def get_diagnosis_history(self) -> List[DiagnosisRecord]:
        """최신순 진단 기록 목록(복사본)을 반환합니다."""
        history = self.history_store.list()
        logger.info(f"진단 히스토리 조회: {len(history)}건")
        return history

    def get_analytics_summary(self) -> AnalyticsSummary:
        summary = self.history_store.summarize()
        logger.info(f"통계 요약 조회: total={summary.total_scans}, healthy={summary.healthy_scans}, "
                    f"diseased={summary.diseased_scans}")
        return summary
