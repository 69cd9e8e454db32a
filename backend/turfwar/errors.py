class GameError(Exception):
    """A game rule failure; the message is shown to the player."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class NotAuthenticatedError(GameError):
    def __init__(self, message="You're not authenticated."):
        super().__init__(message)


class NotFoundError(GameError):
    pass


class NotInRangeError(GameError):
    def __init__(self, message="You're not in range."):
        super().__init__(message)


class InsufficientFundsError(GameError):
    pass


class InvalidAmountError(GameError):
    pass
