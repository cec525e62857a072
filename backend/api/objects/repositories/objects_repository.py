"""Objects repository: metadata data access layer."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from api.objects.dto.object import ObjectRecord
from api.objects.orm.object_model import ObjectModel


class MetadataError(Exception):
    """Raised when the metadata store fails."""


class DuplicateObjectError(MetadataError):
    """Raised when an insert collides with an existing object_id."""


class MetadataRepository(ABC):
    """Durable mapping from object_id to its ObjectRecord."""

    @abstractmethod
    def insert(self, record: ObjectRecord) -> None:
        """Persist a new record. Raises DuplicateObjectError on id collision."""

    @abstractmethod
    def get(self, object_id: str) -> ObjectRecord | None:
        pass

    @abstractmethod
    def exists(self, object_id: str) -> bool:
        pass

    @abstractmethod
    def increment_download_count(self, object_id: str) -> bool:
        """Atomically add one to the counter. False if the record is gone."""

    @abstractmethod
    def delete(self, object_id: str) -> bool:
        """Remove the record. False if it was already absent."""

    @abstractmethod
    def list_expired(self, now: datetime) -> list[ObjectRecord]:
        """All records with expires_at <= now, oldest first."""


def _to_db(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _model_to_record(model: ObjectModel) -> ObjectRecord:
    return ObjectRecord(
        object_id=model.object_id,
        original_name=model.original_name,
        storage_key=model.storage_key,
        content_type=model.content_type,
        size_bytes=model.size_bytes or 0,
        created_at=_from_db(model.created_at),
        expires_at=_from_db(model.expires_at),
        download_count=model.download_count or 0,
    )


class SqlObjectRepository(MetadataRepository):
    """SQLAlchemy implementation; one short-lived session per call."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _get_session(self):
        return self._session_factory()

    def insert(self, record: ObjectRecord) -> None:
        with self._get_session() as session:
            session.add(
                ObjectModel(
                    object_id=record.object_id,
                    original_name=record.original_name,
                    storage_key=record.storage_key,
                    content_type=record.content_type,
                    size_bytes=record.size_bytes,
                    download_count=record.download_count,
                    created_at=_to_db(record.created_at),
                    expires_at=_to_db(record.expires_at),
                )
            )
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateObjectError(f"object_id already exists: {record.object_id}") from e
            except SQLAlchemyError as e:
                session.rollback()
                raise MetadataError(f"Failed to insert {record.object_id}: {e}") from e

    def get(self, object_id: str) -> ObjectRecord | None:
        try:
            with self._get_session() as session:
                model = session.query(ObjectModel).filter_by(object_id=object_id).first()
                return _model_to_record(model) if model else None
        except SQLAlchemyError as e:
            raise MetadataError(f"Failed to load {object_id}: {e}") from e

    def exists(self, object_id: str) -> bool:
        try:
            with self._get_session() as session:
                return (
                    session.query(ObjectModel.id).filter_by(object_id=object_id).first()
                    is not None
                )
        except SQLAlchemyError as e:
            raise MetadataError(f"Failed to check {object_id}: {e}") from e

    def increment_download_count(self, object_id: str) -> bool:
        # Single UPDATE statement; the database serializes concurrent increments.
        try:
            with self._get_session() as session:
                updated = (
                    session.query(ObjectModel)
                    .filter_by(object_id=object_id)
                    .update(
                        {ObjectModel.download_count: ObjectModel.download_count + 1},
                        synchronize_session=False,
                    )
                )
                session.commit()
                return updated > 0
        except SQLAlchemyError as e:
            raise MetadataError(f"Failed to count download of {object_id}: {e}") from e

    def delete(self, object_id: str) -> bool:
        try:
            with self._get_session() as session:
                deleted = (
                    session.query(ObjectModel)
                    .filter_by(object_id=object_id)
                    .delete(synchronize_session=False)
                )
                session.commit()
                return deleted > 0
        except SQLAlchemyError as e:
            raise MetadataError(f"Failed to delete {object_id}: {e}") from e

    def list_expired(self, now: datetime) -> list[ObjectRecord]:
        try:
            with self._get_session() as session:
                models = (
                    session.query(ObjectModel)
                    .filter(ObjectModel.expires_at <= _to_db(now))
                    .order_by(ObjectModel.expires_at)
                    .all()
                )
                return [_model_to_record(m) for m in models]
        except SQLAlchemyError as e:
            raise MetadataError(f"Failed to list expired objects: {e}") from e
