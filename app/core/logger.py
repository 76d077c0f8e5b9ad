"""파이프라인 공용 로거 모듈.

모든 서비스 모듈은 `get_logger(__name__)`으로 로거를 얻고,
턴 식별자 등 구조화 필드는 `extra=`로 전달합니다.
"""

import logging
import sys

_LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """모듈 이름으로 로거를 반환합니다.

    Args:
        name: 로거 이름 (일반적으로 __name__ 사용).
        level: 핸들러가 처음 붙을 때 적용할 로그 레벨.

    Returns:
        stdout 핸들러가 연결된 로거 인스턴스.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)

    return logger
