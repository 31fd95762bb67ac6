"""
Authorization to use the radio, which some platforms require before a scan.
"""
import logging

logger = logging.getLogger(__name__)


class Authorizer:
    """ Asks the platform for permission to scan and connect. """

    def ensure_authorized(self) -> bool:
        """
        :return: True if access is granted, False if it was refused.
        """
        raise NotImplementedError()


class GrantedAuthorizer(Authorizer):
    """ For platforms where no runtime permission is needed. """

    def ensure_authorized(self):
        return True


class CallableAuthorizer(Authorizer):
    """
    Delegates to a function, such as one that shows a permission prompt.
    Any error raised by the function counts as a refusal.
    """

    def __init__(self, fn):
        self.fn = fn

    def ensure_authorized(self):
        try:
            granted = bool(self.fn())
        except Exception as e:
            logger.error("authorization request failed: %s", e)
            return False
        if granted:
            logger.debug("user accepted bluetooth permissions")
        else:
            logger.error("user refused bluetooth permissions")
        return granted
