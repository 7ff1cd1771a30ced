"""
Translation of ledger errors into HTTP errors
"""

from fastapi import HTTPException, status

from ..exceptions import (
    LoanLedgerError, ValidationError, EntityNotFoundError,
    PaymentAbortedError, PersistenceError
)


def to_http_error(error: LoanLedgerError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (PaymentAbortedError, PersistenceError)):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
