# Lazy imports to avoid dependency chains at startup
def __getattr__(name):
    if name == "CorrectionLearningService":
        from tagledger.services.correction_learning import CorrectionLearningService
        return CorrectionLearningService
    elif name == "CorrectionBackend":
        from tagledger.services.pattern_store import CorrectionBackend
        return CorrectionBackend
    elif name == "InMemoryPatternStore":
        from tagledger.services.pattern_store import InMemoryPatternStore
        return InMemoryPatternStore
    elif name == "SQLPatternStore":
        from tagledger.services.pattern_store import SQLPatternStore
        return SQLPatternStore
    elif name == "RuleGenerator":
        from tagledger.services.rule_generator import RuleGenerator
        return RuleGenerator
    elif name == "normalize":
        from tagledger.services.normalizer import normalize
        return normalize
    raise AttributeError(f"module 'tagledger.services' has no attribute '{name}'")

__all__ = [
    "CorrectionLearningService",
    "CorrectionBackend",
    "InMemoryPatternStore",
    "SQLPatternStore",
    "RuleGenerator",
    "normalize",
]
