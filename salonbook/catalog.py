"""Service catalog lookup used wherever a service needs pricing."""
from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidServiceError, ServiceNotFound
from .models import Service


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    price_paise: int
    duration_minutes: int

    @classmethod
    def from_service(cls, service: Service) -> "CatalogEntry":
        return cls(
            name=service.name,
            price_paise=service.price_paise,
            duration_minutes=service.duration_minutes,
        )


class ServiceCatalog:
    """Resolve service names against the active rows of the ``services`` table.

    This is the only place booking and billing read prices from; there is no
    in-memory fallback table.
    """

    def lookup(self, name: str) -> CatalogEntry:
        service = Service.query.filter_by(name=name, is_active=True).first()
        if service is None:
            raise ServiceNotFound(name)
        return CatalogEntry.from_service(service)

    def resolve(self, names: list[str]) -> list[CatalogEntry]:
        """Resolve names in request order; fail on the first pass if any is unknown."""
        services = Service.query.filter(
            Service.name.in_(set(names)),
            Service.is_active.is_(True),
        ).all()
        by_name = {service.name: service for service in services}

        missing = list(dict.fromkeys(name for name in names if name not in by_name))
        if missing:
            raise InvalidServiceError(missing)

        return [CatalogEntry.from_service(by_name[name]) for name in names]

    def pricing(self) -> dict[str, dict[str, object]]:
        services = (
            Service.query.filter(Service.is_active.is_(True))
            .order_by(Service.category.asc(), Service.name.asc())
            .all()
        )
        return {
            service.name: {
                "price_paise": service.price_paise,
                "duration_minutes": service.duration_minutes,
                "description": service.description,
                "category": service.category,
            }
            for service in services
        }
