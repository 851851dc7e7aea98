from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import ConnectionFailure, PyMongoError

from tarification.models.errors import StorageError
from tarification.services.health_service import HealthService
from tarification.services.storage_service import STORAGE_COLLECTIONS, StorageService


@pytest.fixture
def broken_storage():
    db = MagicMock()
    collection = db.__getitem__.return_value
    for method in ('find', 'find_one', 'replace_one', 'insert_one', 'update_one', 'delete_one', 'delete_many', 'insert_many'):
        getattr(collection, method).side_effect = PyMongoError('server selection timeout')
    return StorageService(db=db)


def test_insert_one_upserts_by_id(storage_service):
    storage_service.insert_one({'_id': 'x', 'value': 1}, STORAGE_COLLECTIONS.PACKAGES)
    storage_service.insert_one({'_id': 'x', 'value': 2}, STORAGE_COLLECTIONS.PACKAGES)
    assert storage_service.find({}, STORAGE_COLLECTIONS.PACKAGES) == [{'_id': 'x', 'value': 2}]


def test_update_and_delete_report_counts(storage_service):
    storage_service.insert_one({'_id': 'x', 'value': 1}, 'scratch')
    assert storage_service.update_one({'_id': 'x'}, {'value': 3}, 'scratch') == 1
    assert storage_service.update_one({'_id': 'y'}, {'value': 3}, 'scratch') == 0
    assert storage_service.find_one({'_id': 'x'}, 'scratch')['value'] == 3
    assert storage_service.delete_one({'_id': 'x'}, 'scratch') == 1
    assert storage_service.delete_one({'_id': 'x'}, 'scratch') == 0


def test_replace_collection(storage_service):
    storage_service.replace_collection([{'_id': 'a'}, {'_id': 'b'}], 'scratch')
    assert storage_service.replace_collection([{'_id': 'c'}], 'scratch') == 1
    assert storage_service.find({}, 'scratch') == [{'_id': 'c'}]
    assert storage_service.replace_collection([], 'scratch') == 0
    assert storage_service.find({}, 'scratch') == []


def test_load_tariff_grids(tarification_service, storage_service):
    grids = storage_service.load_tariff_grids()
    assert len(grids.rc_rows) == 8
    assert len(grids.injury_rows) == 7
    assert len(grids.collision_rows) == 5
    assert len(grids.fixed_rows) == 8


@pytest.mark.parametrize('call', [
    lambda s: s.find({}, STORAGE_COLLECTIONS.GUARANTEES),
    lambda s: s.find_one({'_id': 'guar-1'}, STORAGE_COLLECTIONS.GUARANTEES),
    lambda s: s.insert_one({'_id': 'guar-1'}, STORAGE_COLLECTIONS.GUARANTEES),
    lambda s: s.update_one({'_id': 'guar-1'}, {'is_active': False}, STORAGE_COLLECTIONS.GUARANTEES),
    lambda s: s.delete_one({'_id': 'guar-1'}, STORAGE_COLLECTIONS.GUARANTEES),
    lambda s: s.replace_collection([], STORAGE_COLLECTIONS.TARIFF_RC),
])
def test_pymongo_failures_become_storage_errors(broken_storage, call):
    with pytest.raises(StorageError) as exc_info:
        call(broken_storage)
    assert isinstance(exc_info.value.__cause__, PyMongoError)


def test_connection_failure(monkeypatch):
    monkeypatch.setenv('MONGO_HOST', 'mongo.invalid')
    with patch('tarification.services.storage_service.MongoClient') as client_cls:
        client_cls.return_value.admin.command.side_effect = ConnectionFailure('refused')
        with pytest.raises(StorageError, match='mongo.invalid'):
            StorageService()


def test_connect_from_environment(monkeypatch):
    monkeypatch.setenv('MONGO_DB_NAME', 'quotes_test')
    with patch('tarification.services.storage_service.MongoClient') as client_cls:
        StorageService()
    client_cls.return_value.__getitem__.assert_called_with('quotes_test')


def test_close_releases_client():
    with patch('tarification.services.storage_service.MongoClient') as client_cls:
        storage = StorageService()
    storage.close()
    client_cls.return_value.close.assert_called_once()


def test_close_without_client_is_noop(storage_service):
    storage_service.close()
    assert len(storage_service.find({}, 'scratch')) == 0


def test_health_reports_store_state(tarification_service, broken_storage):
    assert HealthService(tarification_service).get_health_status() == {'status': 'ok', 'catalog': 'ok'}
    tarification_service.storage_service = broken_storage
    assert HealthService(tarification_service).get_health_status() == {'status': 'degraded', 'catalog': 'unavailable'}
