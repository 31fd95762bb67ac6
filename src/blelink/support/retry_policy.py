import logging

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    A bounded sequence of attempts. Each attempt is given the next parameter in the sequence,
    so a policy can vary how an operation is tried as well as how often.

    The policy knows nothing about what is being attempted, which makes it usable with any
    operation that signals failure by raising.

    :param attempts: the parameter passed to each successive attempt. The number of parameters is the
        maximum number of attempts.
    """

    def __init__(self, attempts):
        self.attempts = tuple(attempts)
        if not self.attempts:
            raise ValueError("a retry policy needs at least one attempt")

    @property
    def max_attempts(self):
        return len(self.attempts)

    def __iter__(self):
        return iter(self.attempts)

    def __repr__(self):
        return "RetryPolicy%r" % (self.attempts,)

    def run(self, attempt, retry_on=(Exception,), on_retry=None):
        """
        Calls attempt(parameter) for each parameter in turn until one call returns without raising.
        :param attempt:     the callable to try.
        :param retry_on:    the exception types that count as a failed attempt. Anything else propagates
            immediately.
        :param on_retry:    called with (parameter, error) when a failed attempt is followed by another.
        :return: the result of the first successful attempt.
        :raises: the error from the final attempt when every attempt fails.
        """
        last = len(self.attempts) - 1
        for index, parameter in enumerate(self.attempts):
            try:
                return attempt(parameter)
            except retry_on as e:
                if index == last:
                    raise
                logger.debug("attempt %d of %d failed (%s), retrying", index + 1, len(self.attempts), e)
                if on_retry:
                    on_retry(parameter, e)
