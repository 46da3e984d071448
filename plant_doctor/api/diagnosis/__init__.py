# plant_doctor/api/diagnosis/__init__.py
"""
식물 질병 진단 API

- 진단 요청 (저장 없음 / 저장 포함)
- 진단 히스토리 조회
- 통계 요약 조회
"""
