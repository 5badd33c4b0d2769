import logging


class CuteHandler(logging.StreamHandler):

    def format(self, record):
        msg = super(CuteHandler, self).format(record)
        isatty = getattr(self.stream, "isatty", None)
        if isatty is None or not isatty():
            return msg
        color = sum(record.name.encode()) % 7 + 31
        return ("\x1b[%dm" % color) + msg + "\x1b[0m"


def getlogger(name):
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if not any(isinstance(h, CuteHandler) for h in logger.handlers):
        stream_handler = CuteHandler()
        stream_handler.setFormatter(logging.Formatter('%(levelname)-7s | %(asctime)-23s | %(name)-8s | %(message)s'))
        logger.addHandler(stream_handler)

    return logger
