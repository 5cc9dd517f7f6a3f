"""
Retry executor exceptions.

The executor itself never raises for operation failures; it reports them in
RetryResult. These exceptions fill the ``error`` slot when the executor
stops on its own account, and are what ``with_retry`` raises when there is
no operation error to re-raise.
"""

from typing import Optional

from deepsource_mcp.retry.circuit_breaker import CircuitState


class RetryExhausted(Exception):
    """
    Raised by ``with_retry`` when a call failed without recording an error.

    Attributes:
        endpoint: Endpoint key of the call
        attempts: Number of invocations made
    """

    def __init__(
        self,
        message: str = "Operation failed after retries",
        endpoint: Optional[str] = None,
        attempts: int = 0,
    ) -> None:
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(message)


class CircuitOpenError(Exception):
    """
    The circuit breaker refused the very first attempt.

    Attributes:
        endpoint: Endpoint key whose breaker is open
        state: Breaker state at refusal time
    """

    def __init__(self, endpoint: str, state: CircuitState) -> None:
        self.endpoint = endpoint
        self.state = state
        super().__init__(f"Circuit breaker is {state.value} for {endpoint}")
