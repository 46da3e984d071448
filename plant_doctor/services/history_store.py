# plant_doctor/services/history_store.py
import logging
import threading
from typing import List, Dict

from plant_doctor.models.diagnosis import DiagnosisRecord, AnalyticsSummary, CommonIssue

logger = logging.getLogger(__name__)

# 통계 요약에 포함할 상위 질병 개수
TOP_ISSUES_LIMIT = 3


class HistoryStore:
    """
    진단 기록을 프로세스 메모리에 보관하는 저장소.
    앱 팩토리에서 앱당 하나씩 생성되며, 프로세스가 종료되면 함께 사라집니다.

    - append: 가장 최근 기록이 맨 앞에 오도록 삽입
    - list: 최신순 스냅샷 복사본 반환
    - summarize: 조회 시점의 스냅샷으로 통계를 새로 계산
    """

    def __init__(self):
        self._records: List[DiagnosisRecord] = []
        self._lock = threading.Lock()

    def append(self, record: DiagnosisRecord) -> None:
        """기록을 히스토리의 맨 앞에 추가합니다. 중복 제거나 용량 제한은 하지 않습니다."""
        with self._lock:
            self._records.insert(0, record)
            size = len(self._records)
        logger.info(f"진단 기록 저장 완료: {record.id} (총 {size}건)")

    def list(self) -> List[DiagnosisRecord]:
        """최신순(newest -> oldest) 기록 목록의 복사본을 반환합니다."""
        with self._lock:
            return list(self._records)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def summarize(self) -> AnalyticsSummary:
        """
        현재 히스토리로부터 통계 요약을 계산합니다.

        - 진단 목록이 비어 있는 기록은 '건강'으로 집계
        - 그 외 기록은 포함된 모든 진단 항목이 질병별 카운터를 하나씩 증가시킴
        - 상위 질병은 횟수 내림차순, 동률이면 먼저 집계된 순서 유지 (최대 3개)
        """
        snapshot = self.list()

        total_scans = len(snapshot)
        healthy_scans = 0
        disease_counts: Dict[str, int] = {}

        for record in snapshot:
            if record.is_healthy:
                healthy_scans += 1
                continue
            for diagnosis in record.diagnoses:
                disease_counts[diagnosis.disease] = disease_counts.get(diagnosis.disease, 0) + 1

        # sorted()는 안정 정렬이므로 동률은 삽입 순서를 유지합니다.
        ranked = sorted(disease_counts.items(), key=lambda item: item[1], reverse=True)
        common_issues = tuple(
            CommonIssue(name=name, count=count) for name, count in ranked[:TOP_ISSUES_LIMIT]
        )

        return AnalyticsSummary(
            total_scans=total_scans,
            healthy_scans=healthy_scans,
            diseased_scans=total_scans - healthy_scans,
            common_issues=common_issues,
        )
