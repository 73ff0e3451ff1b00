from tagledger.api.corrections import router as corrections_router

__all__ = ["corrections_router"]
