# backend/app/db/models/tenant_data.py
"""
Tables inside each tenant's isolated database.

The billing core only counts rows here; the business CRUD that writes them
lives outside this package.
"""
from sqlalchemy import Column, String, Boolean, BigInteger, Numeric
from app.db.base import TenantBaseModel, new_id


class TenantUser(TenantBaseModel):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), default="operator", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Product(TenantBaseModel):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Invoice(TenantBaseModel):
    """Sales transactions; counted per calendar month"""
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=new_id)
    number = Column(String(50), nullable=False)
    total = Column(Numeric(12, 2), nullable=False, default=0)


class StoredFile(TenantBaseModel):
    __tablename__ = "stored_files"

    id = Column(String(36), primary_key=True, default=new_id)
    path = Column(String(500), nullable=False)
    size_bytes = Column(BigInteger, nullable=False, default=0)
