from vidcards.api.routes import router

__all__ = ["router"]
