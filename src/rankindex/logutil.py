import logging, sys, pathlib

FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def get_logger(name="rankindex", log_file=None, level=logging.INFO):
    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(level)
    fmt = logging.Formatter(FORMAT)

    # calling twice (tests, repeated runs in one process) must not duplicate output
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    sh = logging.StreamHandler(sys.stdout); sh.setFormatter(fmt); logger.addHandler(sh)
    if log_file:
        pathlib.Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, mode="w"); fh.setFormatter(fmt); logger.addHandler(fh)
    return logger


def close_logger(logger):
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
