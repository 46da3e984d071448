# plant_doctor/models/diagnosis.py
from dataclasses import dataclass
from typing import Optional, Tuple, Dict, Any

from plant_doctor.utils.datetime_utils import DateTimeUtils


@dataclass(frozen=True)
class DetectDiseaseInput:
    """
    외부 진단 플로우에 전달되는 입력값.
    이미지 참조(data URI)는 검증하지 않고 그대로 전달합니다.
    """
    photo_data_uri: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Diagnosis:
    """후보 질병 하나와 그 신뢰도(0~1)."""
    disease: str
    confidence: float

    def __post_init__(self):
        if not self.disease:
            raise ValueError("질병 이름은 비어 있을 수 없습니다.")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"신뢰도는 0과 1 사이여야 합니다: {self.confidence}")


@dataclass(frozen=True)
class DiagnosisResult:
    """
    외부 플로우가 반환하는 진단 결과.
    diagnoses가 비어 있으면 '질병 없음(건강)'을 의미합니다.
    """
    diagnoses: Tuple[Diagnosis, ...] = ()

    @property
    def is_healthy(self) -> bool:
        return len(self.diagnoses) == 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagnosisResult":
        """{'diagnoses': [{'disease': ..., 'confidence': ...}]} 형태의 딕셔너리로부터 생성합니다."""
        items = data.get('diagnoses') or []
        return cls(diagnoses=tuple(
            Diagnosis(disease=item['disease'], confidence=float(item['confidence']))
            for item in items
        ))


@dataclass(frozen=True)
class DiagnosisRecord:
    """
    히스토리에 저장되는 진단 기록.
    한 번 생성되면 변경되지 않으며, 프로세스가 종료될 때까지 유지됩니다.
    """
    id: str
    photo_data_uri: str
    timestamp: str  # ISO-8601 UTC 문자열 (예: 2024-01-15T10:30:00Z)
    diagnoses: Tuple[Diagnosis, ...] = ()
    user_id: Optional[str] = None

    def __post_init__(self):
        # 잘못된 타임스탬프면 ValueError
        DateTimeUtils.parse_iso_datetime(self.timestamp)

    @property
    def is_healthy(self) -> bool:
        return len(self.diagnoses) == 0

    @classmethod
    def from_result(cls, record_id: str, result: DiagnosisResult, photo_data_uri: str,
                    timestamp: str, user_id: Optional[str] = None) -> "DiagnosisRecord":
        return cls(
            id=record_id,
            photo_data_uri=photo_data_uri,
            timestamp=timestamp,
            diagnoses=result.diagnoses,
            user_id=user_id,
        )


@dataclass(frozen=True)
class CommonIssue:
    name: str
    count: int


@dataclass(frozen=True)
class AnalyticsSummary:
    """
    히스토리로부터 조회 시점마다 새로 계산되는 통계 요약.
    저장되지 않습니다.
    """
    total_scans: int = 0
    healthy_scans: int = 0
    diseased_scans: int = 0
    common_issues: Tuple[CommonIssue, ...] = ()
