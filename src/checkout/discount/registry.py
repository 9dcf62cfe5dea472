"""Discount registry — commands for creating and retiring discount codes."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.discount.discount import Discount, find_by_code
from checkout.domain import checkout


@checkout.command(part_of="Discount")
class CreateDiscount:
    code = String(required=True, max_length=50)
    description = String(max_length=255)
    discount_type = String(required=True, max_length=20)
    value = Float(required=True, min_value=0.0)
    min_cart_value = Float(default=0.0)
    max_uses = Integer(min_value=1)
    valid_from = DateTime()
    valid_until = DateTime()


@checkout.command(part_of="Discount")
class DeactivateDiscount:
    discount_id = Identifier(required=True)


@checkout.command_handler(part_of=Discount)
class DiscountRegistryHandler:
    @handle(CreateDiscount)
    def create_discount(self, command):
        if find_by_code(command.code) is not None:
            raise ValidationError({"code": ["Discount code already exists"]})

        discount = Discount.create(
            code=command.code,
            discount_type=command.discount_type,
            value=command.value,
            min_cart_value=command.min_cart_value,
            max_uses=command.max_uses,
            valid_from=command.valid_from,
            valid_until=command.valid_until,
            description=command.description,
        )
        current_domain.repository_for(Discount).add(discount)
        return str(discount.id)

    @handle(DeactivateDiscount)
    def deactivate_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)
        discount.deactivate()
        repo.add(discount)
