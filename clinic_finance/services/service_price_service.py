"""Service price catalog management."""
from decimal import Decimal, InvalidOperation
import logging
from typing import List

from sqlalchemy.exc import IntegrityError

from clinic_finance.database import UnitOfWork
from clinic_finance.exceptions import NotFoundError, ValidationError
from clinic_finance.models import AuditAction, ServicePrice
from clinic_finance.services.audit_service import log_action
from clinic_finance.utils.number_format import parse_amount

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {'service_name', 'description', 'base_price', 'insurance_price', 'active'}


def _service_name(value) -> str:
    name = str(value).strip() if value is not None else ''
    if not name:
        raise ValidationError('service_name is required', field='service_name')
    return name[:200]


def _insurance_price(value):
    """Optional price; zero is allowed (fully covered), negatives are not."""
    if value is None or value == '':
        return None
    try:
        return parse_amount(value, 'insurance_price')
    except ValidationError:
        try:
            is_zero = Decimal(str(value).replace(',', '.')) == 0
        except InvalidOperation:
            is_zero = False
        if is_zero:
            return Decimal('0.00')
        raise


def _active(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', '1', 'yes'):
        return True
    if isinstance(value, str) and value.strip().lower() in ('false', '0', 'no'):
        return False
    raise ValidationError('active must be a boolean', field='active')


class ServicePriceService:
    """Create, list, update and deactivate catalog prices."""

    def __init__(self, session):
        self.session = session

    def _ensure_unique(self, name: str, exclude_id: str = None):
        query = self.session.query(ServicePrice).filter(ServicePrice.service_name == name)
        if exclude_id:
            query = query.filter(ServicePrice.id != exclude_id)
        if query.first() is not None:
            raise ValidationError(f'A service named "{name}" already exists', field='service_name')

    def _commit(self, service_price: ServicePrice) -> ServicePrice:
        try:
            with UnitOfWork(self.session) as uow:
                uow.add(service_price)
        except IntegrityError:
            raise ValidationError(
                f'A service named "{service_price.service_name}" already exists', field='service_name'
            )
        return service_price

    def create(self, data: dict) -> ServicePrice:
        name = _service_name(data.get('service_name'))
        self._ensure_unique(name)

        service_price = ServicePrice(
            service_name=name,
            description=data.get('description'),
            base_price=parse_amount(data.get('base_price'), 'base_price'),
            insurance_price=_insurance_price(data.get('insurance_price')),
            active=_active(data['active']) if 'active' in data else True
        )
        self._commit(service_price)

        logger.info(f"Service price created: {service_price.service_name} = {service_price.base_price}")
        log_action(self.session, AuditAction.SERVICE_PRICE_CHANGED, 'service_price', service_price.id,
                   {'created': service_price.service_name})
        return service_price

    def list(self, active_only: bool = True) -> List[ServicePrice]:
        """Catalog entries ordered by service name."""
        query = self.session.query(ServicePrice)
        if active_only:
            query = query.filter(ServicePrice.active.is_(True))
        return query.order_by(ServicePrice.service_name.asc()).all()

    def get_by_id(self, service_price_id: str) -> ServicePrice:
        service_price = self.session.get(ServicePrice, service_price_id)
        if service_price is None:
            raise NotFoundError(f'Service price {service_price_id} not found')
        return service_price

    def update(self, service_price_id: str, fields: dict) -> ServicePrice:
        service_price = self.get_by_id(service_price_id)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f'Fields not updatable: {", ".join(sorted(unknown))}')

        changes = {}
        if 'service_name' in fields:
            changes['service_name'] = _service_name(fields['service_name'])
            self._ensure_unique(changes['service_name'], exclude_id=service_price.id)
        if 'description' in fields:
            changes['description'] = fields['description']
        if 'base_price' in fields:
            changes['base_price'] = parse_amount(fields['base_price'], 'base_price')
        if 'insurance_price' in fields:
            changes['insurance_price'] = _insurance_price(fields['insurance_price'])
        if 'active' in fields:
            changes['active'] = _active(fields['active'])

        for key, value in changes.items():
            setattr(service_price, key, value)
        self._commit(service_price)

        log_action(self.session, AuditAction.SERVICE_PRICE_CHANGED, 'service_price', service_price.id,
                   {key: str(value) for key, value in changes.items()})
        return service_price

    def deactivate(self, service_price_id: str) -> ServicePrice:
        """Soft delete: referenced prices are never removed."""
        return self.update(service_price_id, {'active': False})
