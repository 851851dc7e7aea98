import logging
import uuid
from typing import Dict, Iterable, List, NamedTuple, Optional, Union

import pandas as pd
from pydantic import BaseModel, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from tarification.models.errors import NotFoundError, ValidationError
from tarification.models.models import CollisionTariffRow, FixedTariffRow, InjuryTariffRow, RcTariffRow
from tarification.services.storage_service import STORAGE_COLLECTIONS, StorageService
from tarification.utils.codes import normalize_code

logger = logging.getLogger(__name__)

RC_COLUMNS = list(RcTariffRow.model_fields)
INJURY_COLUMNS = list(InjuryTariffRow.model_fields)
COLLISION_COLUMNS = list(CollisionTariffRow.model_fields)
FIXED_COLUMNS = list(FixedTariffRow.model_fields)


def _rows_to_frame(rows: Iterable[BaseModel], columns: List[str]) -> pd.DataFrame:
    return pd.DataFrame([row.model_dump(mode='json') for row in rows], columns=columns)


def _validate_rows(model, rows: Iterable[Union[BaseModel, Dict]], prefix: str) -> List:
    validated = []
    for row in rows:
        data = row.model_dump() if isinstance(row, BaseModel) else dict(row)
        try:
            parsed = model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {model.__name__}: {e}") from e
        if not parsed.id:
            parsed.id = f"{prefix}-{uuid.uuid4().hex[:8]}"
        validated.append(parsed)
    return validated


def _as_document(row: BaseModel) -> Dict:
    document = row.model_dump(mode='json')
    document['_id'] = row.id
    return document


def _power_ranges_overlap(a: RcTariffRow, b: RcTariffRow) -> bool:
    return (a.category == b.category and a.energy == b.energy
            and a.power_min <= b.power_max and b.power_min <= a.power_max)


class GridFrames(NamedTuple):
    rc: pd.DataFrame
    injury: pd.DataFrame
    collision: pd.DataFrame
    fixed: pd.DataFrame


class TariffGridRepository:
    """
    In-memory cache of the four tariff grids, one DataFrame per grid.
    Frames are built on first use and swapped wholesale by reload(); every
    write through this repository reloads, so a getter never sees None once
    the grids have loaded. A calculation already holding a frame keeps it.
    """

    def __init__(self, storage_service: StorageService):
        self.storage_service = storage_service
        self.rc_tariffs: pd.DataFrame = None
        self.injury_tariffs: pd.DataFrame = None
        self.collision_tariffs: pd.DataFrame = None
        self.fixed_tariffs: pd.DataFrame = None

    def initialize(self) -> GridFrames:
        """Loads all grids from the catalog store."""
        grids = self.storage_service.load_tariff_grids()
        frames = GridFrames(
            rc=_rows_to_frame(grids.rc_rows, RC_COLUMNS),
            injury=_rows_to_frame(grids.injury_rows, INJURY_COLUMNS),
            collision=_rows_to_frame(grids.collision_rows, COLLISION_COLUMNS),
            fixed=_rows_to_frame(grids.fixed_rows, FIXED_COLUMNS),
        )
        self.rc_tariffs, self.injury_tariffs, self.collision_tariffs, self.fixed_tariffs = frames
        logger.info(
            f"Tariff grids loaded: rc={len(frames.rc)}, ic_ipt={len(frames.injury)}, "
            f"collision={len(frames.collision)}, fixed={len(frames.fixed)}")
        return frames

    def reload(self) -> GridFrames:
        """Loads the grids again and replaces the cached frames."""
        logger.info("Reloading tariff grids")
        return self.initialize()

    def get_rc_tariffs(self) -> pd.DataFrame:
        df = self.rc_tariffs
        if df is None:
            df = self.initialize().rc
        return df

    def get_injury_tariffs(self) -> pd.DataFrame:
        df = self.injury_tariffs
        if df is None:
            df = self.initialize().injury
        return df

    def get_collision_tariffs(self) -> pd.DataFrame:
        df = self.collision_tariffs
        if df is None:
            df = self.initialize().collision
        return df

    def get_fixed_tariffs(self) -> pd.DataFrame:
        df = self.fixed_tariffs
        if df is None:
            df = self.initialize().fixed
        return df

    def fixed_tariff(self, guarantee_name: str) -> Optional[FixedTariffRow]:
        """Gets the fixed tariff row for a guarantee name (accents and case ignored), or None."""
        df = self.get_fixed_tariffs()
        if df.empty or not guarantee_name:
            return None
        mask = df['guarantee_name'].map(normalize_code) == normalize_code(guarantee_name)
        matches = df[mask]
        if matches.empty:
            return None
        record = matches.iloc[0].to_dict()
        return FixedTariffRow.model_validate({k: (None if pd.isna(v) else v) for k, v in record.items()})

    # --- RC grid maintenance ---

    def list_rc_rows(self) -> List[RcTariffRow]:
        return [RcTariffRow.model_validate(d) for d in self.storage_service.find({}, STORAGE_COLLECTIONS.TARIFF_RC)]

    def _check_rc_overlap(self, row: RcTariffRow, existing: List[RcTariffRow]):
        for other in existing:
            if other.id != row.id and _power_ranges_overlap(row, other):
                raise ValidationError(
                    f"RC row {row.category}/{row.energy} power {row.power_min}-{row.power_max} "
                    f"overlaps row '{other.id}' ({other.power_min}-{other.power_max})")

    def create_rc_row(self, row: Union[RcTariffRow, Dict]) -> RcTariffRow:
        created = _validate_rows(RcTariffRow, [row], 'rc')[0]
        existing = self.list_rc_rows()
        if any(other.id == created.id for other in existing):
            raise ValidationError(f"RC row '{created.id}' already exists")
        self._check_rc_overlap(created, existing)
        self.storage_service.insert_one(_as_document(created), STORAGE_COLLECTIONS.TARIFF_RC)
        self.reload()
        logger.info(f"RC row {created.id} created")
        return created

    def update_rc_row(self, row_id: str, changes: Dict) -> RcTariffRow:
        existing = self.list_rc_rows()
        current = next((r for r in existing if r.id == row_id), None)
        if current is None:
            raise NotFoundError("RC tariff row", row_id)
        merged = {**current.model_dump(), **{to_snake(k): v for k, v in changes.items()}, 'id': row_id}
        updated = _validate_rows(RcTariffRow, [merged], 'rc')[0]
        self._check_rc_overlap(updated, existing)
        self.storage_service.insert_one(_as_document(updated), STORAGE_COLLECTIONS.TARIFF_RC)
        self.reload()
        logger.info(f"RC row {row_id} updated")
        return updated

    def delete_rc_row(self, row_id: str):
        deleted = self.storage_service.delete_one({"_id": row_id}, STORAGE_COLLECTIONS.TARIFF_RC)
        if not deleted:
            raise NotFoundError("RC tariff row", row_id)
        self.reload()
        logger.info(f"RC row {row_id} deleted")

    # --- Bulk replacement ---

    def replace_rc_rows(self, rows: Iterable[Union[RcTariffRow, Dict]]) -> List[RcTariffRow]:
        validated = _validate_rows(RcTariffRow, rows, 'rc')
        for i, row in enumerate(validated):
            self._check_rc_overlap(row, validated[i + 1:])
        return self._replace(validated, STORAGE_COLLECTIONS.TARIFF_RC)

    def replace_injury_rows(self, rows: Iterable[Union[InjuryTariffRow, Dict]]) -> List[InjuryTariffRow]:
        return self._replace(_validate_rows(InjuryTariffRow, rows, 'ic'), STORAGE_COLLECTIONS.TARIFF_IC_IPT)

    def replace_collision_rows(self, rows: Iterable[Union[CollisionTariffRow, Dict]]) -> List[CollisionTariffRow]:
        return self._replace(_validate_rows(CollisionTariffRow, rows, 'tcm'), STORAGE_COLLECTIONS.TARIFF_COLLISION)

    def replace_fixed_rows(self, rows: Iterable[Union[FixedTariffRow, Dict]]) -> List[FixedTariffRow]:
        return self._replace(_validate_rows(FixedTariffRow, rows, 'fix'), STORAGE_COLLECTIONS.TARIFF_FIXED)

    def _replace(self, rows: List, collection: STORAGE_COLLECTIONS) -> List:
        self.storage_service.replace_collection([_as_document(r) for r in rows], collection)
        self.reload()
        logger.info(f"Grid {collection.value} replaced with {len(rows)} rows")
        return rows
