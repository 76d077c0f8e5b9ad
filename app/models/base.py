# app/models/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """여행 계획 파이프라인의 모든 ORM 모델이 공유하는 선언적 기반 클래스.

    `Base.metadata`는 테스트에서 SQLite 스키마를 만들 때와
    운영 마이그레이션에서 테이블 목록을 얻을 때 함께 사용된다.
    """

    pass
