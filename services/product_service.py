"""
services/product_service.py
----------------------------
Product listing management for owners and paginated browsing for buyers.
"""

import math
from typing import Optional

from config import PRODUCTS_PER_PAGE
from models.product import (
    PRODUCT_STATUSES,
    STATUS_IN_STOCK,
    STATUS_LABELS,
    STATUS_OUT_OF_STOCK,
    Product,
)
from repositories.company_repo import CompanyRepository
from repositories.product_repo import EDITABLE_FIELDS, ProductRepository
from repositories.user_repo import UserRepository
from services.user_service import is_admin
from utils.errors import NotFoundError, PermissionDeniedError, ValidationError
from utils.formatting import md, money, parse_amount, parse_int
from utils.logger import get_logger

logger = get_logger(__name__)


class ProductService:
    """Handles products and browsing."""

    def __init__(
        self,
        product_repo: Optional[ProductRepository] = None,
        company_repo: Optional[CompanyRepository] = None,
        user_repo: Optional[UserRepository] = None,
        per_page: int = PRODUCTS_PER_PAGE,
    ):
        self.repo = product_repo or ProductRepository()
        self.companies = company_repo or CompanyRepository()
        self.users = user_repo or UserRepository()
        self.per_page = per_page

    # ── OWNER ACTIONS ─────────────────────────────────────

    def add_product(
        self,
        owner_id: int,
        company_id: int,
        title: str,
        price,
        quantity: int,
        description: Optional[str] = None,
    ) -> Product:
        self._owned_company(owner_id, company_id)
        title = (title or "").strip()
        if not title:
            raise ValidationError("⚠️ The product needs a title.")
        price = parse_amount(str(price))
        if price is None:
            raise ValidationError("⚠️ Price must be a positive number.")
        if quantity is None or quantity < 0:
            raise ValidationError("⚠️ Quantity must be zero or more.")
        if self.repo.title_exists(company_id, title):
            raise ValidationError(f"⚠️ This company already has a product called {md(title)}.")

        product = Product(
            company_id=company_id,
            title=title,
            description=description,
            price=price,
            quantity=quantity,
            status=STATUS_IN_STOCK if quantity > 0 else STATUS_OUT_OF_STOCK,
        )
        return self.repo.add(product)

    def edit_product(self, owner_id: int, product_id: int, field: str, raw_value: str) -> Product:
        """
        Change one field of a product.

        Args:
            field: One of EDITABLE_FIELDS.
            raw_value: The user's text, parsed according to the field.
        """
        product = self._owned_product(owner_id, product_id)
        field = (field or "").lower()
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"⚠️ Editable fields: {', '.join(EDITABLE_FIELDS)}.")

        if field == "price":
            value = parse_amount(raw_value)
            if value is None:
                raise ValidationError("⚠️ Price must be a positive number.")
        elif field == "quantity":
            value = parse_int(raw_value)
            if value is None:
                raise ValidationError("⚠️ Quantity must be zero or more.")
        elif field == "status":
            value = (raw_value or "").strip().lower()
            if value not in PRODUCT_STATUSES:
                raise ValidationError(f"⚠️ Status must be one of: {', '.join(PRODUCT_STATUSES)}.")
        else:
            value = (raw_value or "").strip()
            if field == "title":
                if not value:
                    raise ValidationError("⚠️ The product needs a title.")
                if self.repo.title_exists(product.company_id, value, exclude_id=product_id):
                    raise ValidationError(f"⚠️ This company already has a product called {md(value)}.")

        self.repo.update_field(product_id, field, value)
        setattr(product, field, value)

        # Keep the stock status consistent with the new quantity.
        if field == "quantity":
            if value == 0 and product.status != STATUS_OUT_OF_STOCK:
                self.repo.update_field(product_id, "status", STATUS_OUT_OF_STOCK)
                product.status = STATUS_OUT_OF_STOCK
            elif value > 0 and product.status == STATUS_OUT_OF_STOCK:
                self.repo.update_field(product_id, "status", STATUS_IN_STOCK)
                product.status = STATUS_IN_STOCK

        logger.info(f"User {owner_id} set product #{product_id}.{field}")
        return product

    def delete_product(self, owner_id: int, product_id: int) -> Product:
        product = self._owned_product(owner_id, product_id)
        self.repo.delete(product_id)
        return product

    def my_products_text(self, owner_id: int) -> str:
        companies = self.companies.list_by_owner(owner_id)
        if not companies:
            return "📦 You don't own any company yet."
        lines = ["📦 *Your products*\n"]
        for c in companies:
            lines.append(f"🏢 *{md(c.name)}* (#{c.id})")
            products = self.repo.list_by_company(c.id)
            if not products:
                lines.append("   No products yet.")
            for p in products:
                lines.append(
                    f"   #{p.id} {md(p.title)}: {money(p.price)} x{p.quantity} "
                    f"{STATUS_LABELS.get(p.status, p.status)}"
                )
        lines.append("\nEdit: /edit\\_product <id> <field> <value>")
        return "\n".join(lines)

    # ── BROWSING ──────────────────────────────────────────

    def get(self, product_id: int) -> Product:
        product = self.repo.get(product_id)
        if not product:
            raise NotFoundError(f"❌ Product #{product_id} not found.")
        return product

    def browse(self, page: int = 0) -> tuple[str, list[Product], int, int]:
        """
        One page of browsable products.

        Returns:
            (message, products on the page, page index, page count)
        """
        page = max(page, 0)
        products, total = self.repo.browse(page, self.per_page)
        pages = max(math.ceil(total / self.per_page), 1)
        if page >= pages:
            page = pages - 1
            products, total = self.repo.browse(page, self.per_page)
        if not products:
            return "🛍 No products available yet.", [], 0, 1

        lines = [f"🛍 *Products* (page {page + 1}/{pages})\n"]
        for p in products:
            lines.append(
                f"#{p.id} *{md(p.title)}* by {md(p.company_name)}\n"
                f"   {money(p.price)} | {STATUS_LABELS.get(p.status, p.status)}"
            )
        return "\n".join(lines), products, page, pages

    def product_text(self, product_id: int) -> str:
        p = self.get(product_id)
        msg = (
            f"📦 *{md(p.title)}* (#{p.id})\n"
            f"🏢 {md(p.company_name)}\n"
            f"💵 {money(p.price)}\n"
            f"📊 {STATUS_LABELS.get(p.status, p.status)} ({p.quantity} left)\n"
        )
        if p.description:
            msg += f"\n{md(p.description)}\n"
        return msg

    # ── HELPERS ───────────────────────────────────────────

    def _owned_company(self, owner_id: int, company_id: int):
        company = self.companies.get(company_id)
        if not company:
            raise NotFoundError(f"❌ Company #{company_id} not found.")
        if company.owner_id != owner_id and not is_admin(owner_id, self.users.get(owner_id)):
            raise PermissionDeniedError("⛔ This is not your company.")
        return company

    def _owned_product(self, owner_id: int, product_id: int) -> Product:
        product = self.get(product_id)
        self._owned_company(owner_id, product.company_id)
        return product
