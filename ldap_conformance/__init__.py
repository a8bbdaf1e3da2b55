__version__ = "1.0.0"

from .config import Config
from .connection import Directory
from .exceptions import (
    ConfigError,
    ConnectError,
    DirectoryError,
    LDAPConformanceError,
    ResultCode,
    SetupError,
)
from .results import LoopStatistics, OperationKind, TestOutcome, TestSuiteRun
from .runner import Runner, RunnerPhase
from .tracker import EntryKind, TrackedEntry, Tracker
