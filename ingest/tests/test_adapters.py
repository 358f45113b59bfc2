"""End-to-end adapter runs against a fake transport."""

import json
import logging

import pytest

from ingest.adapters import (
    EuroklimateAdapter,
    GeneralClimateAdapter,
    MHIAdapter,
    get_adapter_class,
)
from ingest.config import get_supplier_spec
from ingest.errors import ConfigurationError, FeedParseError, RecordError, TransportError

GC_URL = "https://gc.example.com/export.json"
EK_URL = "https://ek.example.com/yml.xml"
MHI_URLS = ["https://mhi.example.com/part1.json", "https://mhi.example.com/part2.json"]

GC_RECORD = {
    "ID": "555",
    "EXTID": "gc-555",
    "NAME": "Сплит-система GC/GU-A07HR",
    "CODE": "GC-A07HR",
    "BRAND": "General Climate",
    "PRICE": "45 990#CURRENCY#",
    "TYPE_oborud": "Сплит-системы",
    "SERIES": "Alpha",
    "Only_cool": "нет",
    "EER": "3,21",
    "PREVIEW_TEXT": "<p>Тихий <b>инверторный</b> блок</p>",
    "DETAIL_PICTURE": "/upload/a.jpg",
    "PREVIEW_PICTURE": "/upload/a.jpg",
}

EK_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<yml_catalog date="2024-05-01 10:00">
  <shop>
    <categories>
      <category id="1">Кондиционеры</category>
      <category id="2" parentId="1">Сплит-системы</category>
      <category id="3" parentId="2">Инверторные</category>
    </categories>
    <offers>
      <offer id="101" available="true">
        <name>Сплит-система EK-07</name>
        <vendor>Ballu</vendor>
        <vendorCode>BSO-07</vendorCode>
        <barcode>4607000000017</barcode>
        <price>32 990,00</price>
        <currencyId>RUR</currencyId>
        <categoryId>3</categoryId>
        <url>https://ek.example.com/p/101</url>
        <count>4</count>
        <picture>https://cdn.example.com/1.jpg</picture>
        <picture>//cdn.example.com/2.jpg</picture>
        <param name="Мощность" unit="кВт">2,1</param>
        <param name="Цвет">белый</param>
        <document name="Инструкция">https://ek.example.com/doc/101.pdf</document>
        <document>https://ek.example.com/doc/101-cert.pdf</document>
      </offer>
      <offer id="102">
        <name>Пульт ДУ</name>
        <categoryId>2</categoryId>
      </offer>
    </offers>
  </shop>
</yml_catalog>
"""


def prop(storage, name):
    return storage.query_one("""
        SELECT pp.value_text, pp.value_number, pp.value_json
        FROM product_property pp JOIN property p ON p.id = pp.property_id
        WHERE p.name = ?
    """, (name,))


def log_rows(storage):
    return [dict(r) for r in storage.query_all("SELECT batch_id, status, message FROM import_log ORDER BY id")]


class TestGeneralClimate:

    @pytest.fixture(autouse=True)
    def feed_env(self, monkeypatch):
        monkeypatch.setenv("GENERAL_CLIMATE_URL", GC_URL)

    def test_single_record_import(self, seeded, fake_fetch, row_count):
        """One well-formed record gives one product, one offer and an ok log row."""
        fetch = fake_fetch({GC_URL: [GC_RECORD]})
        count = GeneralClimateAdapter(seeded, fetch=fetch).run("b1")

        assert count == 1
        assert fetch.calls == [GC_URL]
        assert row_count(seeded, "product") == 1
        assert row_count(seeded, "supplier_offer") == 1
        assert row_count(seeded, "raw_import") == 1
        assert log_rows(seeded) == [{"batch_id": "b1", "status": "ok", "message": "Imported: 1"}]

        product = seeded.query_one("SELECT * FROM product")
        assert product["sku"] == "GC-A07HR"
        assert product["title"] == "Сплит-система GC/GU-A07HR"
        assert product["description"] == "Тихий инверторный блок"

        offer = seeded.query_one("SELECT * FROM supplier_offer")
        assert offer["supplier_sku"] == "gc-555"
        assert offer["price"] == 45990
        assert offer["currency"] == "RUB"
        assert offer["product_id"] == product["id"]

    def test_currency_from_registry_default(self, seeded):
        """The feed has no currency field, so the configured default applies."""
        spec = dict(get_supplier_spec("generalclimate"), defaults={"currency": "KZT"})
        offer = GeneralClimateAdapter(seeded, spec=spec).normalize(GC_RECORD)
        assert offer.price == 45990
        assert offer.currency == "KZT"

    def test_categories_properties_images(self, seeded, fake_fetch, row_count):
        """Type/series path, typed properties and resolved image URL are stored."""
        GeneralClimateAdapter(seeded, fetch=fake_fetch({GC_URL: [GC_RECORD]})).run("b1")

        assert [r["name"] for r in seeded.query_all("SELECT name FROM category ORDER BY id")] == \
            ["Сплит-системы", "Alpha"]
        assert row_count(seeded, "product_category") == 2
        assert prop(seeded, "Только холод")["value_json"] == "false"
        assert prop(seeded, "EER")["value_number"] == pytest.approx(3.21)
        assert prop(seeded, "Серия")["value_text"] == "Alpha"
        assert [r["url"] for r in seeded.query_all("SELECT url FROM image")] == \
            ["https://gc.example.com/upload/a.jpg"]

    def test_reimport_converges(self, seeded, fake_fetch, row_count):
        """Importing the same feed twice updates rows instead of adding them."""
        changed = dict(GC_RECORD, PRICE="39 990#CURRENCY#")
        GeneralClimateAdapter(seeded, fetch=fake_fetch({GC_URL: [GC_RECORD]})).run("b1")
        GeneralClimateAdapter(seeded, fetch=fake_fetch({GC_URL: [changed]})).run("b2")

        for table in ("product", "supplier_offer", "brand", "image"):
            assert row_count(seeded, table) == 1
        assert row_count(seeded, "category") == 2
        assert row_count(seeded, "product_category") == 2
        assert row_count(seeded, "raw_import") == 2
        assert seeded.scalar("SELECT price FROM supplier_offer") == 39990
        assert [r["status"] for r in log_rows(seeded)] == ["ok", "ok"]

    def test_transport_failure_logged(self, seeded, failing_fetch, row_count):
        """A failed fetch writes nothing but an error log row."""
        with pytest.raises(TransportError):
            GeneralClimateAdapter(seeded, fetch=failing_fetch).run("b1")

        assert row_count(seeded, "product") == 0
        rows = log_rows(seeded)
        assert len(rows) == 1
        assert rows[0]["status"] == "error"
        assert "503" in rows[0]["message"]

    def test_malformed_feed(self, seeded, fake_fetch):
        """A body that is not JSON is logged as an error."""
        with pytest.raises(FeedParseError):
            GeneralClimateAdapter(seeded, fetch=fake_fetch({GC_URL: "<html>"})).run("b1")
        assert log_rows(seeded)[0]["status"] == "error"

    def test_bad_record_keeps_earlier_ones(self, seeded, fake_fetch, row_count):
        """Records before a bad one stay committed and the position is reported."""
        fetch = fake_fetch({GC_URL: [GC_RECORD, "not an object"]})
        with pytest.raises(RecordError) as exc_info:
            GeneralClimateAdapter(seeded, fetch=fetch).run("b1")

        assert exc_info.value.position == 1
        assert row_count(seeded, "product") == 1
        assert row_count(seeded, "raw_import") == 2
        assert log_rows(seeded)[0]["message"].startswith("Record #1:")

    def test_missing_feed_url_logged(self, seeded, fake_fetch, monkeypatch):
        """An unset feed variable is logged as an error without fetching."""
        monkeypatch.delenv("GENERAL_CLIMATE_URL")
        fetch = fake_fetch({})
        with pytest.raises(ConfigurationError, match="GENERAL_CLIMATE_URL"):
            GeneralClimateAdapter(seeded, fetch=fetch).run("b1")

        assert fetch.calls == []
        rows = log_rows(seeded)
        assert rows[0]["status"] == "error"
        assert "GENERAL_CLIMATE_URL" in rows[0]["message"]

    def test_unregistered_supplier_not_logged(self, storage, fake_fetch, row_count):
        """Without a supplier row there is nothing to log against."""
        with pytest.raises(ConfigurationError, match="setup"):
            GeneralClimateAdapter(storage, fetch=fake_fetch({GC_URL: []})).run("b1")
        assert row_count(storage, "import_log") == 0

    def test_empty_feed(self, seeded, fake_fetch):
        """An empty feed still logs a successful run."""
        assert GeneralClimateAdapter(seeded, fetch=fake_fetch({GC_URL: []})).run("b1") == 0
        assert log_rows(seeded)[0]["message"] == "Imported: 0"

    def test_run_error_event(self, seeded, failing_fetch, caplog):
        """A failed run emits run_start and run_error, never run_complete."""
        caplog.set_level(logging.INFO, logger="ingest")
        with pytest.raises(TransportError):
            GeneralClimateAdapter(seeded, fetch=failing_fetch).run("b1")
        events = [getattr(r, "event_type", None) for r in caplog.records]
        assert "run_start" in events
        assert "run_error" in events
        assert "run_complete" not in events


class TestEuroklimate:

    @pytest.fixture(autouse=True)
    def feed_env(self, monkeypatch):
        monkeypatch.setenv("EK_YML_URL", EK_URL)

    def _run(self, storage, fake_fetch, batch_id="b1"):
        return EuroklimateAdapter(storage, fetch=fake_fetch({EK_URL: EK_FEED})).run(batch_id)

    def test_import(self, seeded, fake_fetch, row_count):
        """YML offers become products and offers with price, currency, stock and url."""
        assert self._run(seeded, fake_fetch) == 2
        assert row_count(seeded, "product") == 2

        offer = seeded.query_one("SELECT * FROM supplier_offer WHERE supplier_sku = '101'")
        assert offer["price"] == 32990
        assert offer["currency"] == "RUB"
        assert offer["stock"] == 4
        assert offer["url"] == "https://ek.example.com/p/101"

        product = seeded.query_one("SELECT * FROM product WHERE id = ?", (offer["product_id"],))
        assert product["sku"] == "BSO-07"
        assert product["barcode"] == "4607000000017"

        bare = seeded.query_one("SELECT price, currency FROM supplier_offer WHERE supplier_sku = '102'")
        assert bare["price"] is None
        assert bare["currency"] == "RUB"

    def test_category_chain_from_ids(self, seeded, fake_fetch, row_count):
        """categoryId is expanded to the full root to leaf chain."""
        self._run(seeded, fake_fetch)
        assert row_count(seeded, "category") == 3
        assert row_count(seeded, "supplier_category_map") == 2

        sku_101 = seeded.scalar("SELECT product_id FROM supplier_offer WHERE supplier_sku = '101'")
        linked = seeded.scalar("SELECT COUNT(*) FROM product_category WHERE product_id = ?", (sku_101,))
        assert linked == 3

    def test_params_and_documents(self, seeded, fake_fetch):
        """param elements and documents become text properties."""
        self._run(seeded, fake_fetch)
        assert prop(seeded, "Мощность")["value_text"] == "2,1 кВт"
        assert prop(seeded, "Цвет")["value_text"] == "белый"
        assert prop(seeded, "Инструкция")["value_text"] == "https://ek.example.com/doc/101.pdf"
        assert prop(seeded, "Документ 2")["value_text"] == "https://ek.example.com/doc/101-cert.pdf"

    def test_images(self, seeded, fake_fetch):
        """Pictures are stored in feed order with protocol-relative links fixed."""
        self._run(seeded, fake_fetch)
        rows = seeded.query_all("SELECT url, position FROM image ORDER BY position")
        assert [tuple(r) for r in rows] == [
            ("https://cdn.example.com/1.jpg", 0),
            ("https://cdn.example.com/2.jpg", 1),
        ]

    def test_second_run_uses_category_map(self, seeded, fake_fetch, row_count):
        """A repeated run resolves categories from the supplier map."""
        self._run(seeded, fake_fetch, "b1")
        self._run(seeded, fake_fetch, "b2")
        assert row_count(seeded, "category") == 3
        assert row_count(seeded, "supplier_category_map") == 2
        assert row_count(seeded, "product") == 2
        assert row_count(seeded, "supplier_offer") == 2
        assert row_count(seeded, "image") == 2


class TestMHI:

    @pytest.fixture(autouse=True)
    def feed_env(self, monkeypatch):
        monkeypatch.setenv("MHI_URLS", " , ".join(MHI_URLS))

    @pytest.fixture
    def feeds(self):
        return {
            MHI_URLS[0]: {"items": [{
                "ID": "9001",
                "NAME": "SRK20ZS-W",
                "SECTIONS": {"SECTION_1": "Бытовые", "SECTION_2": "Настенные"},
                "BASE_PRICE": "",
                "PREVIEW_PICTURE": "https://mhi.example.com/a.jpg",
                "PROPERTIES": {"SEER": "8,5", "MORE_PHOTO": ["https://mhi.example.com/b.jpg"]},
            }]},
            MHI_URLS[1]: [{
                "ID": "9002",
                "NAME": "FDC71VNX",
                "CODE": "FDC71VNX",
                "SECTIONS": {"SECTION_1": "Полупромышленные"},
                "BASE_PRICE": "150000",
            }],
        }

    def test_all_urls_fetched(self, seeded, fake_fetch, feeds, row_count):
        """Every configured URL is fetched, in order."""
        fetch = fake_fetch(feeds)
        assert MHIAdapter(seeded, fetch=fetch).run("b1") == 2
        assert fetch.calls == MHI_URLS
        assert row_count(seeded, "product") == 2

    def test_default_brand_and_price(self, seeded, fake_fetch, feeds):
        """Brand comes from the default; currency is set only with a price."""
        MHIAdapter(seeded, fetch=fake_fetch(feeds)).run("b1")
        assert seeded.scalar("SELECT name FROM brand") == "Mitsubishi Heavy Industries"

        blank = seeded.query_one("SELECT price, currency FROM supplier_offer WHERE supplier_sku = '9001'")
        assert blank["price"] is None
        assert blank["currency"] is None
        priced = seeded.query_one("SELECT price, currency FROM supplier_offer WHERE supplier_sku = '9002'")
        assert priced["price"] == 150000
        assert priced["currency"] == "RUB"

    def test_properties_and_gallery(self, seeded, fake_fetch, feeds):
        """Open properties are mapped; the photo gallery becomes images."""
        MHIAdapter(seeded, fetch=fake_fetch(feeds)).run("b1")
        assert prop(seeded, "SEER")["value_number"] == pytest.approx(8.5)
        assert prop(seeded, "MORE_PHOTO") is None
        assert seeded.scalar("SELECT COUNT(*) FROM image") == 2

    def test_record_without_identity_reuses_product(self, seeded, fake_fetch, feeds, row_count):
        """Records with no SKU or barcode keep their product across runs."""
        MHIAdapter(seeded, fetch=fake_fetch(feeds)).run("b1")
        MHIAdapter(seeded, fetch=fake_fetch(feeds)).run("b2")
        assert row_count(seeded, "product") == 2
        assert row_count(seeded, "supplier_offer") == 2

    def test_second_feed_failure_writes_nothing(self, seeded, fake_fetch, feeds, row_count):
        """All URLs are fetched before any record is written."""
        feeds[MHI_URLS[1]] = TransportError("boom", url=MHI_URLS[1])
        with pytest.raises(TransportError):
            MHIAdapter(seeded, fetch=fake_fetch(feeds)).run("b1")
        assert row_count(seeded, "product") == 0
        assert row_count(seeded, "raw_import") == 0


class TestRegistry:

    def test_lookup(self):
        """Registered codes resolve to their adapter class."""
        assert get_adapter_class("mhi") is MHIAdapter

    def test_unknown(self):
        """Unknown codes are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown supplier"):
            get_adapter_class("nope")

    def test_raw_payload_preserved(self, seeded, fake_fetch, monkeypatch):
        """The raw record is stored exactly as parsed."""
        monkeypatch.setenv("GENERAL_CLIMATE_URL", GC_URL)
        GeneralClimateAdapter(seeded, fetch=fake_fetch({GC_URL: [GC_RECORD]})).run("b1")
        payload = seeded.scalar("SELECT payload FROM raw_import WHERE batch_id = 'b1'")
        assert json.loads(payload) == GC_RECORD
