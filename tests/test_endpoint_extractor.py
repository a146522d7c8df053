from modernization_dashboard.services.endpoint_extractor import (
    FALLBACK_ENDPOINTS,
    extract_endpoints,
    filter_endpoints,
    group_endpoints_by_service,
)

ROUTES = """
const router = express.Router();

router.get('/api/customers', listCustomers);
router.post("/api/customers", createCustomer);
app.put(`/api/customers/:id`, updateCustomer);
router.delete('/api/orders/:id', removeOrder);
// router.options('/api/ignored', noop);
"""


def test_extract_endpoints_empty_source_returns_fallback() -> None:
    endpoints = extract_endpoints("")

    assert len(endpoints) == 3
    assert endpoints == list(FALLBACK_ENDPOINTS)
    assert [(endpoint.method, endpoint.path) for endpoint in endpoints] == [
        ("GET", "/api/data"),
        ("GET", "/api/data/:id"),
        ("POST", "/api/data"),
    ]
    assert endpoints[1].parameters == ("id",)


def test_extract_endpoints_recognizes_calls_in_source_order() -> None:
    endpoints = extract_endpoints(ROUTES)

    assert [(endpoint.method, endpoint.path) for endpoint in endpoints] == [
        ("GET", "/api/customers"),
        ("POST", "/api/customers"),
        ("PUT", "/api/customers/:id"),
        ("DELETE", "/api/orders/:id"),
    ]
    assert endpoints[0].description == "GET endpoint for /api/customers"
    assert endpoints[0].response == "JSON response"
    assert endpoints[0].parameters == ()


def test_extract_endpoints_unrecognized_source_returns_fallback() -> None:
    assert extract_endpoints("module.exports = {};") == list(FALLBACK_ENDPOINTS)


def test_filter_endpoints_by_method_and_search() -> None:
    endpoints = extract_endpoints(ROUTES)

    assert len(filter_endpoints(endpoints, "all")) == 4
    assert [endpoint.method for endpoint in filter_endpoints(endpoints, "get")] == ["GET"]
    assert [endpoint.path for endpoint in filter_endpoints(endpoints, search="ORDERS")] == ["/api/orders/:id"]
    assert filter_endpoints(endpoints, "patch") == []


def test_group_endpoints_by_service() -> None:
    groups = group_endpoints_by_service(extract_endpoints(ROUTES))

    assert [(group.name, len(group.endpoints)) for group in groups] == [("customers", 3), ("orders", 1)]
    general = group_endpoints_by_service(extract_endpoints("app.get('/health', ok);"))
    assert general[0].name == "general"
