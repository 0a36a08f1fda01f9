"""
File-based safety zone source for SafeGuard.

This module loads zones from the bundled data file or from the last
snapshot saved after a successful network refresh. JSON, CSV and
XLSX files are supported; CSV and XLSX carry one polygon vertex per row.
"""

import csv
import json
import os
from collections import OrderedDict
from typing import Any, Dict, List, Sequence
import openpyxl
from safeguard.core.models import SafetyZone
from safeguard.core.normalize import to_zones, zone_document
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.zone_file")

# 표 형식 파일의 필수 컬럼
REQUIRED_COLUMNS = ("zone_id", "safety_level", "latitude", "longitude")

def _rows_to_raw_zones(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """꼭짓점 행들을 zone_id별 원시 구역 딕셔너리로 묶습니다 (행 순서 유지)."""
    grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for row in rows:
        zone_id = str(row["zone_id"]).strip()
        raw = grouped.setdefault(zone_id, {
            "id": zone_id,
            "name": str(row.get("name") or zone_id).strip(),
            "safety_level": str(row["safety_level"]).strip().lower(),
            "description": str(row.get("description") or "").strip(),
            "boundary": [],
        })
        raw["boundary"].append({"latitude": row["latitude"], "longitude": row["longitude"]})
    return list(grouped.values())

def _check_columns(headers: Sequence[Any], path: str) -> None:
    missing = [c for c in REQUIRED_COLUMNS if c not in headers]
    if missing:
        raise ValueError(f"필수 컬럼을 찾을 수 없습니다: {missing}. 사용 가능한 컬럼: {list(headers)} path:{path}")

def load_raw_zones(path: str) -> List[Dict[str, Any]]:
    """
    구역 파일을 원시 딕셔너리 목록으로 읽습니다.

    Raises:
        ValueError: 지원하지 않는 형식 또는 필수 컬럼 누락
    """
    ext = os.path.splitext(path)[1].lower()

    if ext == ".json":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        # 스냅샷 파일은 {"zones": [...]} 형태
        return zone_document(data)

    if ext == ".csv":
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            _check_columns(reader.fieldnames or [], path)
            return _rows_to_raw_zones([r for r in reader if r.get("zone_id")])

    if ext == ".xlsx":
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.active
            rows = ws.iter_rows(values_only=True)
            headers = [str(h).strip() if h is not None else "" for h in next(rows, [])]
            _check_columns(headers, path)

            records = []
            for row_num, row in enumerate(rows, start=2):
                record = dict(zip(headers, row))
                if not record.get("zone_id"):
                    continue
                if record.get("latitude") in (None, "") or record.get("longitude") in (None, ""):
                    log.warning(f"행 {row_num} 위도/경도 값이 비어있음: {record.get('zone_id')}")
                    continue
                records.append(record)
            return _rows_to_raw_zones(records)
        finally:
            wb.close()

    raise ValueError(f"지원하지 않는 파일 형식: {ext}")

class FileZoneSource:
    """파일 기반 안전 구역 원천"""

    def __init__(self, path: str):
        """
        초기화합니다.

        Args:
            path: 구역 파일 경로 (.json, .csv, .xlsx)
        """
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    async def fetch_zones(self) -> List[SafetyZone]:
        """
        파일에서 구역을 읽습니다.

        Raises:
            FileNotFoundError: 파일이 없는 경우
            ValueError: 형식 오류
        """
        zones, skipped = to_zones(load_raw_zones(self.path))
        log.info(f"구역 파일 로드됨 path:{self.path} count:{len(zones)} skipped:{skipped}")
        return zones

    async def save_zones(self, zones: Sequence[SafetyZone]) -> None:
        """
        구역 스냅샷을 JSON으로 저장합니다 (오프라인 폴백용).

        임시 파일에 쓴 뒤 교체하므로 읽는 쪽은 항상 완전한 파일을 봅니다.
        """
        if os.path.splitext(self.path)[1].lower() != ".json":
            raise ValueError(f"스냅샷은 JSON 파일에만 저장할 수 있습니다: {self.path}")

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = {"zones": [z.model_dump(mode="json") for z in zones]}
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)
        log.info(f"구역 스냅샷 저장됨 path:{self.path} count:{len(zones)}")
