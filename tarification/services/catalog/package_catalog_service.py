import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tarification.models.errors import NotFoundError, ValidationError
from tarification.models.models import InsurancePackage
from tarification.services.catalog.guarantee_catalog_service import as_document, snake_keys, utc_now
from tarification.services.storage_service import STORAGE_COLLECTIONS, StorageService
from tarification.utils.codes import derive_code, normalize_code

logger = logging.getLogger(__name__)


class PackageCatalogService:
    """
    Insurance packages in the catalog store. total_price is whatever the caller
    saved; it is not recomputed when member guarantees change.
    """

    def __init__(self, storage_service: StorageService, clock: Callable[[], datetime] = utc_now):
        self.storage_service = storage_service
        self.clock = clock

    def get_package(self, package_id: str) -> Optional[InsurancePackage]:
        """Gets a package by id, None when it does not exist."""
        document = self.storage_service.find_one({'_id': package_id}, STORAGE_COLLECTIONS.PACKAGES)
        return InsurancePackage.model_validate(document) if document else None

    def list_packages(self) -> List[InsurancePackage]:
        return [InsurancePackage.model_validate(d) for d in self.storage_service.find({}, STORAGE_COLLECTIONS.PACKAGES)]

    def list_packages_containing(self, guarantee_id: str) -> List[InsurancePackage]:
        """Gets the packages whose guarantee list references `guarantee_id`."""
        return [p for p in self.list_packages() if guarantee_id in p.guarantees]

    def _taken_codes(self, exclude_id: str = None) -> set:
        return {d.get('code') for d in self.storage_service.find({}, STORAGE_COLLECTIONS.PACKAGES)
                if d['_id'] != exclude_id}

    def _explicit_code(self, code: str, exclude_id: str = None) -> str:
        normalized = normalize_code(code)
        if normalized in self._taken_codes(exclude_id):
            raise ValidationError(f"Package code '{normalized}' is already used")
        return normalized

    def _validate(self, data: Dict) -> InsurancePackage:
        try:
            return InsurancePackage.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid package: {e}") from e

    def create_package(self, data: Dict) -> InsurancePackage:
        data = snake_keys(data)
        data['id'] = data.get('id') or f"pack-{uuid.uuid4().hex[:12]}"
        if normalize_code(data.get('code')):
            data['code'] = self._explicit_code(data['code'])
        else:
            data['code'] = derive_code(data.get('name', ''), self._taken_codes())
        now = self.clock()
        data['created_at'] = now
        data['updated_at'] = now

        package = self._validate(data)
        self.storage_service.insert_one(as_document(package), STORAGE_COLLECTIONS.PACKAGES)
        logger.info(f"Package {package.id} ({package.code}) created with {len(package.guarantees)} guarantees")
        return package

    def update_package(self, package_id: str, partial: Dict) -> InsurancePackage:
        current = self.get_package(package_id)
        if current is None:
            raise NotFoundError("Package", package_id)
        partial = snake_keys(partial)
        merged = current.model_dump()
        merged.update({k: v for k, v in partial.items() if k not in ('id', 'created_at')})
        if 'guarantee_ids' in partial:
            merged['guarantees'] = partial['guarantee_ids']
        if 'code' in partial:
            merged['code'] = self._explicit_code(partial['code'], exclude_id=package_id)
        merged['id'] = package_id
        merged['updated_at'] = self.clock()

        updated = self._validate(merged)
        self.storage_service.insert_one(as_document(updated), STORAGE_COLLECTIONS.PACKAGES)
        logger.info(f"Package {package_id} updated")
        return updated

    def delete_package(self, package_id: str):
        deleted = self.storage_service.delete_one({'_id': package_id}, STORAGE_COLLECTIONS.PACKAGES)
        if not deleted:
            raise NotFoundError("Package", package_id)
        logger.info(f"Package {package_id} deleted")

    def toggle_package_active(self, package_id: str) -> InsurancePackage:
        """Flips is_active."""
        current = self.get_package(package_id)
        if current is None:
            raise NotFoundError("Package", package_id)
        changes = {'is_active': not current.is_active, 'updated_at': self.clock()}
        self.storage_service.update_one(
            {'_id': package_id},
            {'is_active': changes['is_active'], 'updated_at': changes['updated_at'].isoformat()},
            STORAGE_COLLECTIONS.PACKAGES,
        )
        return current.model_copy(update=changes)
