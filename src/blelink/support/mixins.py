def quote(val):
    return "'" + str(val) + "'" if val is not None else "None"


class StringerMixin:
    """ renders the class name and the instance attributes in key sorted order """

    def __repr__(self):
        return type(self).__name__ + self._sorted_items_string()

    def _sorted_items_string(self):
        return "{" + ", ".join([("'" + str(key)) + "'" + ": " + (quote(val))
                                for key, val in sorted(self.__dict__.items())]) + "}"


class CommonEqualityMixin(object):
    """  equality by attribute values, for value objects. """

    def __eq__(self, other):
        return isinstance(other, self.__class__) and hasattr(other, '__dict__') \
            and self.__dict__ == other.__dict__

    def __ne__(self, other):
        return not self.__eq__(other)
