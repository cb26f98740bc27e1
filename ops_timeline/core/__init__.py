"""
Core module for the Operations Timeline application.
Contains the record store, data provider, history, sync engine and row windowing.
"""

from .errors import (
    DuplicateBatchError,
    PersistenceError,
    PolicyViolationError,
    RecordMappingError,
    RecordNotFoundError,
    SchemaMigrationError,
    TimelineError,
    UnknownTableError,
)
from .config import BoardSettings, load_settings, save_settings
from .models import (
    Batch,
    Equipment,
    Operation,
    ResizeEdge,
    Selection,
    Snapshot,
    TimelineGroup,
    TimelineItem,
    batch_key,
)
from .record_store import RecordStore, StoreHandle
from .data_provider import DataProvider, LocalDataProvider
from .timeline_model import TimelineModel
from .history import HistoryManager
from .sync_engine import KEEP_BATCH, SyncEngine
from .window_controller import WindowController, compute_rows_per_page
from .viewport import ZoomLevel, visible_range
from .layout import BoardLayout, compose_layout
from .board import Board, Command
from .schedule_export import export_schedule_csv, schedule_frame

__all__ = [
    # Errors
    "DuplicateBatchError",
    "PersistenceError",
    "PolicyViolationError",
    "RecordMappingError",
    "RecordNotFoundError",
    "SchemaMigrationError",
    "TimelineError",
    "UnknownTableError",
    # Config
    "BoardSettings",
    "load_settings",
    "save_settings",
    # Models
    "Batch",
    "Equipment",
    "Operation",
    "ResizeEdge",
    "Selection",
    "Snapshot",
    "TimelineGroup",
    "TimelineItem",
    "batch_key",
    # Storage
    "RecordStore",
    "StoreHandle",
    "DataProvider",
    "LocalDataProvider",
    # Engine
    "TimelineModel",
    "HistoryManager",
    "KEEP_BATCH",
    "SyncEngine",
    "WindowController",
    "compute_rows_per_page",
    # Board
    "ZoomLevel",
    "visible_range",
    "BoardLayout",
    "compose_layout",
    "Board",
    "Command",
    # Export
    "export_schedule_csv",
    "schedule_frame",
]
