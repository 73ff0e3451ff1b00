"""Dependency injection container for core services."""
import os

from tagledger.services.correction_learning import CorrectionLearningService
from tagledger.services.pattern_store import DB_PATH, CorrectionBackend, InMemoryPatternStore, SQLPatternStore
from tagledger.services.rule_generator import RuleGenerator

STORE_BACKEND = os.getenv("TAGLEDGER_STORE_BACKEND", "sql").lower()


class ServiceContainer:
    def __init__(self, store: CorrectionBackend | None = None) -> None:
        self._store = store
        self._corrections = None
        self._rule_generator = None

    def store(self) -> CorrectionBackend:
        if not self._store:
            if STORE_BACKEND == "memory":
                self._store = InMemoryPatternStore()
            else:
                self._store = SQLPatternStore(db_path=os.getenv("TAGLEDGER_DB_PATH", DB_PATH))
        return self._store

    def corrections(self) -> CorrectionLearningService:
        if not self._corrections:
            self._corrections = CorrectionLearningService(self.store())
        return self._corrections

    def rule_generator(self) -> RuleGenerator:
        if not self._rule_generator:
            self._rule_generator = RuleGenerator(known_tags=self.corrections().known_tags)
        return self._rule_generator

    def reset(self, store: CorrectionBackend | None = None) -> None:
        """Drop cached services, optionally swapping the backing store."""
        self._store = store
        self._corrections = None
        self._rule_generator = None


container = ServiceContainer()
