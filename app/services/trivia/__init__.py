from app.services.trivia.client import TriviaClient, ANY_CATEGORY_COUNT, ResponseCode

__all__ = ["TriviaClient", "ANY_CATEGORY_COUNT", "ResponseCode"]
