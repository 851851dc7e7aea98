import os
import json
import logging
from functools import lru_cache
from typing import Dict, List

import pandas as pd

logger = logging.getLogger(__name__)

RC_TABLE = 'rc_tariffs.csv'
INJURY_TABLE = 'injury_tariffs.csv'
COLLISION_TABLE = 'collision_tariffs.csv'
FIXED_TABLE = 'fixed_tariffs.csv'
GUARANTEES_FILE = 'guarantees.json'
PACKAGES_FILE = 'packages.json'


def dataframe_to_records(df: pd.DataFrame) -> List[Dict]:
    """Rows as plain dicts, with empty cells turned into None."""
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict('records')


class DataLoader:
    """
    Handles loading and caching of the bundled default tariff grids and catalog
    records. Grids are CSV tables read with pandas, catalog records are JSON lists.
    """
    def __init__(self, base_path: str = None):
        # Assumes the 'Data' directory sits next to the utils package.
        self.base_path = base_path or os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'Data'))
        logger.info(f"DataLoader initialized with base path: {self.base_path}")
        if not os.path.isdir(self.base_path):
            logger.warning(f"Data directory not found at expected path: {self.base_path}")

    @lru_cache(maxsize=32)
    def load_table(self, table_path: str) -> pd.DataFrame:
        """
        Loads a CSV table into a pandas DataFrame with LRU caching.
        Every cell is read as text; row models do the type coercion.
        """
        full_path = os.path.join(self.base_path, table_path)
        try:
            logger.info(f"Loading table from: {full_path}")
            df = pd.read_csv(full_path, dtype=str, skipinitialspace=True)
            df.columns = df.columns.str.strip()
            return df
        except FileNotFoundError:
            logger.error(f"Failed to find table at {full_path}")
            raise

    @lru_cache(maxsize=8)
    def load_json(self, file_name: str) -> tuple:
        full_path = os.path.join(self.base_path, file_name)
        try:
            logger.info(f"Loading records from: {full_path}")
            with open(full_path, encoding='utf-8') as f:
                return tuple(json.load(f))
        except FileNotFoundError:
            logger.error(f"Failed to find records at {full_path}")
            raise

    def load_rc_tariffs(self) -> List[Dict]:
        """Loads the civil liability grid (category, energy, fiscal power range)."""
        return dataframe_to_records(self.load_table(RC_TABLE))

    def load_injury_tariffs(self) -> List[Dict]:
        """Loads the driver/passenger injury formula grid."""
        return dataframe_to_records(self.load_table(INJURY_TABLE))

    def load_collision_tariffs(self) -> List[Dict]:
        """Loads the full/identified collision rate matrix."""
        return dataframe_to_records(self.load_table(COLLISION_TABLE))

    def load_fixed_tariffs(self) -> List[Dict]:
        """Loads the fixed-price guarantee table."""
        return dataframe_to_records(self.load_table(FIXED_TABLE))

    def load_guarantees(self) -> List[Dict]:
        return [dict(record) for record in self.load_json(GUARANTEES_FILE)]

    def load_packages(self) -> List[Dict]:
        return [dict(record) for record in self.load_json(PACKAGES_FILE)]
