from __future__ import annotations

from chopphub import create_app
from chopphub.config import Config
from chopphub.db import get_db
from chopphub.infrastructure.repositories.account_repository import AccountRepository
from tests.helpers.temp_db import TempDbSandbox


VALID_CPF = "52998224725"
OTHER_CPF = "11144477735"
VALID_CNPJ = "11222333000181"


def build_temp_app(temp_db: TempDbSandbox, **overrides):
    attrs = {"PROPAGATE_EXCEPTIONS": False}
    attrs.update(overrides)
    return create_app(temp_db.make_config(Config, **attrs))


def create_company(app, name: str = "Distribuidora Teste", **values) -> str:
    with app.app_context():
        db = get_db()
        company_id = AccountRepository().create_company(db, {"name": name, **values})
        db.commit()
    return company_id


def company_headers(company_id: str, role: str = "admin") -> dict:
    return {"X-Company-Id": company_id, "X-User-Role": role}


def create_customer(client, headers: dict, **overrides) -> dict:
    payload = {
        "name": "Bar do Ze",
        "document": VALID_CPF,
        "email": "ze@bar.com",
        "phone": "(11) 98765-4321",
        "address": "Rua A",
        "number": "10",
        "neighborhood": "Centro",
        "city": "Sao Paulo",
        "state": "SP",
        "zip_code": "01001-000",
    }
    payload.update(overrides)
    response = client.post("/api/customers", headers=headers, json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def create_product(client, headers: dict, **overrides) -> dict:
    payload = {
        "name": "Chopp Pilsen 50L",
        "code": "CH50",
        "unit": "UN",
        "ncm": "22030000",
        "standard_price": 450.0,
        "stock": 10,
    }
    payload.update(overrides)
    response = client.post("/api/products", headers=headers, json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def create_equipment(client, headers: dict, **overrides) -> dict:
    payload = {"name": "Chopeira eletrica", "type": "chopeira", "value": 1500}
    payload.update(overrides)
    response = client.post("/api/equipments", headers=headers, json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def create_order(client, headers: dict, customer_id: str, product_id: str, **overrides):
    payload = {
        "customer_id": customer_id,
        "items": [{"product_id": product_id, "quantity": 2}],
        "payment_method": "Pix",
        "appointment_date": "2030-01-10",
    }
    payload.update(overrides)
    return client.post("/api/orders", headers=headers, json=payload)
