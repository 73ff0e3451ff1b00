"""FastAPI dependencies for tagledger core services."""
from tagledger.di.container import container


def get_correction_service():
    return container.corrections()


def get_rule_generator():
    return container.rule_generator()
