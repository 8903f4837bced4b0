"""
Persistence for custom domain records and the tenant directory.
"""

import json
import logging
from typing import Dict, List, Optional

import redis.asyncio as redis

from .models import CustomDomainRecord, DomainStatus, Tenant

logger = logging.getLogger("waveorder_domains.domains.repository")


class _RedisBacked:
    """
    Redis connection handling shared by the stores.

    Falls back to in-memory storage if Redis is unreachable or no URL is
    configured, mirroring the behaviour of a single-node deployment.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", key_prefix: str = "waveorder_domains:"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis: Optional[redis.Redis] = None
        self._use_redis = bool(redis_url)

    async def _get_redis(self) -> Optional[redis.Redis]:
        """Get Redis connection."""
        if not self._use_redis:
            return None

        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
                logger.info(f"{type(self).__name__} connected to Redis")
            except (redis.RedisError, OSError) as e:
                logger.warning(
                    f"Redis unavailable for {type(self).__name__}, using in-memory: {e}"
                )
                self._redis = None
                self._use_redis = False
                return None

        return self._redis

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info(f"{type(self).__name__} Redis connection closed")


class DomainRepository(_RedisBacked):
    """
    Stores one CustomDomainRecord per tenant plus a domain -> tenant index.

    The index is what enforces global uniqueness: a domain is claimed with
    SET NX before a tenant's record may reference it.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", key_prefix: str = "waveorder_domains:"):
        super().__init__(redis_url, key_prefix)
        # In-memory fallback
        self._memory_records: Dict[str, dict] = {}
        self._memory_owners: Dict[str, str] = {}

    def _record_key(self, tenant_id: str) -> str:
        return f"{self.key_prefix}record:{tenant_id}"

    def _domain_key(self, domain: str) -> str:
        return f"{self.key_prefix}domain:{domain}"

    @property
    def _index_key(self) -> str:
        return f"{self.key_prefix}records"

    async def get(self, tenant_id: str) -> Optional[CustomDomainRecord]:
        """Get a tenant's record, or None if it has never configured a domain."""
        r = await self._get_redis()

        if r:
            data = await r.get(self._record_key(tenant_id))
            if not data:
                return None
            info = json.loads(data)
        else:
            info = self._memory_records.get(tenant_id)
            if not info:
                return None

        return CustomDomainRecord.from_dict(info)

    async def get_or_empty(self, tenant_id: str) -> CustomDomainRecord:
        record = await self.get(tenant_id)
        return record or CustomDomainRecord(tenant_id=tenant_id)

    async def save(self, record: CustomDomainRecord) -> CustomDomainRecord:
        """Persist a record. NONE records are deleted rather than stored."""
        r = await self._get_redis()

        if record.status == DomainStatus.NONE:
            if r:
                await r.delete(self._record_key(record.tenant_id))
                await r.srem(self._index_key, record.tenant_id)
            else:
                self._memory_records.pop(record.tenant_id, None)
            logger.info(f"Cleared domain record for tenant {record.tenant_id}")
            return record

        data = record.to_dict()
        if r:
            await r.set(self._record_key(record.tenant_id), json.dumps(data))
            await r.sadd(self._index_key, record.tenant_id)
        else:
            self._memory_records[record.tenant_id] = data

        logger.info(
            f"Saved domain record: {record.tenant_id} -> {record.domain} "
            f"[{record.status.value}]"
        )
        return record

    async def owner_of(self, domain: str) -> Optional[str]:
        """Tenant currently holding a domain, if any."""
        r = await self._get_redis()
        if r:
            return await r.get(self._domain_key(domain))
        return self._memory_owners.get(domain)

    async def claim(self, domain: str, tenant_id: str) -> bool:
        """
        Atomically claim a domain for a tenant.

        Returns True if the tenant now owns it (including when it already
        did), False if another tenant holds it.
        """
        r = await self._get_redis()
        if r:
            if await r.set(self._domain_key(domain), tenant_id, nx=True):
                return True
            return await r.get(self._domain_key(domain)) == tenant_id

        owner = self._memory_owners.setdefault(domain, tenant_id)
        return owner == tenant_id

    async def release(self, domain: str, tenant_id: str) -> bool:
        """Release a domain claim held by tenant_id."""
        r = await self._get_redis()
        if r:
            key = self._domain_key(domain)
            if await r.get(key) != tenant_id:
                return False
            await r.delete(key)
            return True

        if self._memory_owners.get(domain) != tenant_id:
            return False
        del self._memory_owners[domain]
        return True

    async def get_by_domain(self, domain: str) -> Optional[CustomDomainRecord]:
        """Find the record currently referencing a domain."""
        tenant_id = await self.owner_of(domain)
        if not tenant_id:
            return None
        record = await self.get(tenant_id)
        if record and record.domain == domain:
            return record
        return None

    async def list_all(self) -> List[CustomDomainRecord]:
        """List every configured (non-NONE) record."""
        r = await self._get_redis()
        records: List[CustomDomainRecord] = []

        if r:
            tenant_ids = await r.smembers(self._index_key)
        else:
            tenant_ids = list(self._memory_records)

        for tenant_id in tenant_ids:
            record = await self.get(tenant_id)
            if record and record.is_configured:
                records.append(record)

        return records


class TenantDirectory(_RedisBacked):
    """
    Read side of the tenant/business collaborator.

    The CRUD layer that owns businesses pushes slug and plan here; the
    domain engine only reads them.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", key_prefix: str = "waveorder_domains:"):
        super().__init__(redis_url, key_prefix)
        self._memory_store: Dict[str, dict] = {}

    def _key(self, tenant_id: str) -> str:
        return f"{self.key_prefix}tenant:{tenant_id}"

    async def get(self, tenant_id: str) -> Optional[Tenant]:
        r = await self._get_redis()
        if r:
            data = await r.get(self._key(tenant_id))
            info = json.loads(data) if data else None
        else:
            info = self._memory_store.get(tenant_id)
        return Tenant.from_dict(info) if info else None

    async def upsert(self, tenant: Tenant) -> Tenant:
        r = await self._get_redis()
        if r:
            await r.set(self._key(tenant.tenant_id), json.dumps(tenant.to_dict()))
        else:
            self._memory_store[tenant.tenant_id] = tenant.to_dict()
        logger.info(f"Tenant synced: {tenant.tenant_id} ({tenant.slug}, {tenant.plan})")
        return tenant
