from conftest import catalog_row, make_catalog, render_catalog, user_error
from pipeline.nodes.import_products import ImportRequest, build_variants, import_products_node
from pipeline.streaming import CompleteEvent, ProgressEvent, read_stream, encode_events


def _run(services, text):
    return list(import_products_node(ImportRequest(catalog_text=text), services))


def test_ten_valid_one_missing_price(services, fake):
    events = _run(services, make_catalog(10, missing_price=("no-price",)))
    done = events[-1]

    assert sum(isinstance(e, ProgressEvent) for e in events) == 11
    assert isinstance(done, CompleteEvent)
    assert done.imported_count == 10
    assert done.failed_count == 1
    assert [e.key for e in done.item_errors] == ["no-price"]
    assert done.success
    assert len(done.created_ids) == 10
    assert "no-price" not in fake.products


def test_product_payload_and_follow_ups(services, fake):
    _run(services, make_catalog(1))
    created = fake.variables("ProductCreate")[0]
    assert created["product"]["handle"] == "shirt-1"
    assert created["product"]["status"] == "ACTIVE"
    assert created["product"]["tags"] == ["summer", "cotton"]
    assert created["media"][0]["originalSource"] == "https://img.test/shirt-1.jpg"

    publish = fake.variables("PublishablePublish")[0]
    assert publish["input"] == [{"publicationId": "gid://shopify/Publication/1"}]

    variants = fake.variables("ProductVariantsBulkCreate")[0]
    assert variants["strategy"] == "REMOVE_STANDALONE_VARIANT"
    assert variants["variants"][0]["inventoryQuantities"] == [
        {"availableQuantity": 5, "locationId": "gid://shopify/Location/1"}
    ]


def test_build_variants_options_and_prices():
    rows = [
        catalog_row("tee", "Tee", price="19,90", **{"Option1 Name": "Size", "Option1 Value": "S",
                                                   "Variant Compare At Price": "25,00"}),
        catalog_row("tee", "", price="21.00", **{"Option1 Value": "M"}),
        catalog_row("tee", "", price="", **{"Option1 Value": "L"}),
    ]
    variants = build_variants(rows, "gid://shopify/Location/1")
    assert [v["price"] for v in variants] == ["19.90", "21.00"]
    assert variants[0]["compareAtPrice"] == "25.00"
    assert variants[1]["optionValues"] == [{"name": "M", "optionName": "Size"}]


def test_default_option_when_none_declared():
    variants = build_variants([catalog_row("cap", "Cap")], "loc")
    assert variants[0]["optionValues"] == [{"name": "Default Title", "optionName": "Title"}]


def test_variant_failure_is_a_warning(services, fake):
    fake.on("ProductVariantsBulkCreate", user_error("productVariantsBulkCreate", "Price must be positive"))
    done = _run(services, make_catalog(2))[-1]
    assert done.imported_count == 2
    assert done.failed_count == 0
    assert len(done.warnings) == 2


def test_product_create_failure_is_item_error(services, fake):
    fake.on("ProductCreate", [user_error("productCreate", "Title is too long"), fake._ProductCreate])
    done = _run(services, make_catalog(2))[-1]
    assert done.imported_count == 1
    assert done.item_errors[0].key == "shirt-1"


def test_rerun_finds_existing_products(services, fake):
    _run(services, make_catalog(3))
    done = _run(services, make_catalog(3))[-1]
    assert done.imported_count == 3
    assert len(fake.products) == 3
    assert fake.count("ProductVariantsBulkCreate") == 3


def test_location_failure_emits_single_terminal_event(services, fake):
    fake.on("GetLocations", {"data": {"locations": {"edges": []}}})
    events = _run(services, make_catalog(4))
    assert len(events) == 1
    done = events[0]
    assert not done.success
    assert done.failed_count == 4
    assert done.processed == done.total == 4
    assert done.item_errors[0].key == "_global"
    assert "ProductCreate" not in fake.ops()


def test_missing_publication_leaves_products_unpublished(services, fake):
    fake.on("GetPublications", {"errors": [{"message": "Access denied for publications field"}]})
    done = _run(services, make_catalog(2))[-1]
    assert done.imported_count == 2
    assert "PublishablePublish" not in fake.ops()


def test_wire_round_trip(services):
    done = read_stream(encode_events(import_products_node(ImportRequest(catalog_text=make_catalog(2)), services)))
    assert done.success and done.imported_count == 2


def test_case_insensitive_headers(services, fake):
    rows = [catalog_row("tee", "Tee")]
    text = render_catalog(rows).replace("Variant Price", "variant price", 1)
    done = _run(services, text)[-1]
    assert done.imported_count == 1
