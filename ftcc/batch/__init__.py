"""
Núcleo del lote: configuración, arranque, pipeline por documento y enrutamiento
"""
from .config import BatchSettings, ConfigFile, load_settings, resolve_config_file
from .errors import DocumentError, ErrorKind, ErrorList
from .job_source import JobSourceError, scan_outgoing
from .keystore import KeyMaterial, LoadedKeyStore, load_keystore, load_private_key
from .outcome_router import DocumentOutcome, OutcomeRouter, Route, RoutingError
from .pipeline import BatchSummary, DocumentPipeline, DocumentResult, run_batch
from .pipeline_logger import EventSink, MemoryEventSink, PipelineLogger
from .self_verification import GateOutcome, SelfVerificationGate
from .startup import StartupResult, resolve_directory

__all__ = [
    'BatchSettings', 'ConfigFile', 'load_settings', 'resolve_config_file',
    'DocumentError', 'ErrorKind', 'ErrorList',
    'JobSourceError', 'scan_outgoing',
    'KeyMaterial', 'LoadedKeyStore', 'load_keystore', 'load_private_key',
    'DocumentOutcome', 'OutcomeRouter', 'Route', 'RoutingError',
    'BatchSummary', 'DocumentPipeline', 'DocumentResult', 'run_batch',
    'EventSink', 'MemoryEventSink', 'PipelineLogger',
    'GateOutcome', 'SelfVerificationGate',
    'StartupResult', 'resolve_directory',
]
