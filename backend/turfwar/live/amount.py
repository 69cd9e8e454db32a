import math

from turfwar.errors import InsufficientFundsError, InvalidAmountError


def round_half_up(value) -> int:
    """Round to the nearest integer, rounding halves up."""
    return int(math.floor(value + 0.5))


def parse_amount(raw_amount) -> int:
    if isinstance(raw_amount, bool):
        raise InvalidAmountError('Invalid amount.')
    if isinstance(raw_amount, float):
        if not raw_amount.is_integer():
            raise InvalidAmountError('Invalid amount.')
        return int(raw_amount)
    try:
        return int(raw_amount)
    except (TypeError, ValueError):
        raise InvalidAmountError('Invalid amount.')


def resolve_amount(raw_amount, use_all, available, shortage_message, zero_message):
    """Resolve a requested transfer amount against an available balance."""
    if use_all is True:
        amount = available
    else:
        amount = parse_amount(raw_amount)
    if amount > available:
        raise InsufficientFundsError(shortage_message)
    if amount < 0:
        raise InvalidAmountError('Amount is below zero.')
    if amount == 0:
        raise InvalidAmountError(zero_message)
    return amount
