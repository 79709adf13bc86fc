class BudgetAppError(ValueError):
    status_code = 500


class ValidationError(BudgetAppError):
    status_code = 400


class ConflictError(BudgetAppError):
    status_code = 400


class AuthError(BudgetAppError):
    status_code = 401


class InvalidCredentialsError(AuthError):
    # login reports bad credentials as a plain 400
    status_code = 400


class NotFoundError(BudgetAppError):
    status_code = 404


class ServerError(BudgetAppError):
    status_code = 500
