"""Magazine registration — command and handler.

Publishers list magazines outside this core. The command exists so the
CLI and tests can seed the catalog through the same path.
"""

from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.catalogue.magazine import Magazine
from marketplace.domain import marketplace


@marketplace.command(part_of="Magazine")
class RegisterMagazine:
    """List a new magazine for sale to retailers."""

    publisher_id: Identifier(required=True)
    title: String(required=True, max_length=255)
    description: Text()
    image_url: String(max_length=1024)
    retail_price: Float(required=True, min_value=0.0)
    wholesale_price: Float(required=True, min_value=0.0)
    available_quantity: Integer(default=0, min_value=0)


@marketplace.command_handler(part_of=Magazine)
class RegisterMagazineHandler:
    @handle(RegisterMagazine)
    def register_magazine(self, command):
        magazine = Magazine.register(
            publisher_id=command.publisher_id,
            title=command.title,
            description=command.description,
            image_url=command.image_url,
            retail_price=command.retail_price,
            wholesale_price=command.wholesale_price,
            available_quantity=command.available_quantity,
        )
        current_domain.repository_for(Magazine).add(magazine)
        return str(magazine.id)
