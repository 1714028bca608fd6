import logging
import importlib.metadata


__version__ = importlib.metadata.version("b003flash")


# Protocol dumps are logged below DEBUG.
logging.TRACE = 5
logging.addLevelName(logging.TRACE, "TRACE")
logging.Logger.trace = lambda self, msg, *args, **kwargs: \
    self.log(logging.TRACE, msg, *args, **kwargs)
