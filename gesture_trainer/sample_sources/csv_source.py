"""
CSV File Sample Source

This module replays accelerometer data from CSV files, so recordings made
elsewhere can be fed through the same buffer, recording and prediction
path as live data.

Expected CSV format:
- Columns timestamp, x, y, z (timestamp in milliseconds, axes in g)
- An optional header row
- Without a timestamp column (three columns), samples are spaced one
  device sample period apart
"""
import logging
from io import StringIO
from typing import List, Optional

import numpy as np
import pandas as pd

from ..config import CURRENT_DATA_WINDOW
from ..data_model import Recording, Sample
from .base_source import SampleSource

logger = logging.getLogger(__name__)

COLUMNS = ['timestamp', 'x', 'y', 'z']


class CSVSource(SampleSource):
    """
    Sample source that replays rows of a CSV file.

    Attributes:
        data: DataFrame with columns timestamp, x, y, z
        current_index: Position of the next row to replay
        sample_period_ms: Spacing used when the file has no timestamps
    """

    def __init__(self, sample_period_ms: int = CURRENT_DATA_WINDOW['device_samples_period']):
        super().__init__()
        self.data: Optional[pd.DataFrame] = None
        self.current_index = 0
        self.sample_period_ms = sample_period_ms

    def load_from_file(self, file_content: bytes) -> bool:
        """
        Load samples from uploaded file content.

        Args:
            file_content: Raw bytes of the CSV file

        Returns:
            True if data loaded successfully, False otherwise
        """
        try:
            try:
                content_str = file_content.decode('utf-8')
            except UnicodeDecodeError:
                content_str = file_content.decode('latin-1')

            df = pd.read_csv(StringIO(content_str), header=None)
            if df.empty:
                raise ValueError("CSV file contains no rows")

            # Skip a header row if the first row is not numeric
            first_row = df.iloc[0]
            if not pd.to_numeric(first_row, errors='coerce').notna().all():
                df = df.iloc[1:]

            df = df.apply(pd.to_numeric, errors='coerce').dropna()

            if df.shape[1] == 3:
                timestamps = np.arange(len(df)) * self.sample_period_ms
                df.insert(0, 'timestamp', timestamps)
            elif df.shape[1] != 4:
                raise ValueError(
                    f"CSV has {df.shape[1]} columns but expected 3 (x, y, z) "
                    "or 4 (timestamp, x, y, z)"
                )
            df.columns = COLUMNS
            df['timestamp'] = df['timestamp'].astype(np.int64)

            self.data = df.reset_index(drop=True)
            self.current_index = 0
            self.is_active = True
            logger.info("Loaded %d samples from CSV", len(self.data))
            return True

        except Exception as e:
            logger.error("Error loading CSV: %s", e)
            self.data = None
            return False

    def load_from_array(self, data: np.ndarray) -> bool:
        """
        Load samples from an array of shape (n, 4) with timestamp, x, y, z.
        """
        if data.ndim != 2 or data.shape[1] != len(COLUMNS):
            logger.error("Invalid data shape: %s. Expected (n, 4)", data.shape)
            return False

        df = pd.DataFrame(data, columns=COLUMNS)
        df['timestamp'] = df['timestamp'].astype(np.int64)
        self.data = df
        self.current_index = 0
        self.is_active = True
        return True

    def get_sample(self) -> Optional[Sample]:
        """
        Get the next sample of the file.

        Samples are returned sequentially. Call reset() to start over.
        """
        if self.data is None or self.current_index >= len(self.data):
            return None
        row = self.data.iloc[self.current_index]
        self.current_index += 1
        return Sample(x=float(row['x']), y=float(row['y']), z=float(row['z']),
                      timestamp=int(row['timestamp']))

    def get_batch(self, batch_size: int) -> List[Sample]:
        samples = []
        for _ in range(batch_size):
            sample = self.get_sample()
            if sample is None:
                break
            samples.append(sample)
        return samples

    def get_recording(self) -> Optional[Recording]:
        """
        Get the whole file as one recording.

        Does not affect the replay position.
        """
        if self.data is None:
            return None
        return Recording(
            x=self.data['x'].astype(float).tolist(),
            y=self.data['y'].astype(float).tolist(),
            z=self.data['z'].astype(float).tolist(),
        )

    def rebase(self, end_time_ms: int) -> None:
        """
        Shift all timestamps so the last sample lands on end_time_ms.

        Replayed files then look like the most recent data in a live
        buffer and fall inside the prediction window.
        """
        if self.data is None or self.data.empty:
            return
        offset = int(end_time_ms) - int(self.data['timestamp'].iloc[-1])
        self.data['timestamp'] = self.data['timestamp'] + offset

    def is_streaming(self) -> bool:
        return False

    def reset(self) -> None:
        self.current_index = 0

    def get_sample_count(self) -> int:
        return len(self.data) if self.data is not None else 0

    def get_remaining_samples(self) -> int:
        if self.data is None:
            return 0
        return max(0, len(self.data) - self.current_index)
