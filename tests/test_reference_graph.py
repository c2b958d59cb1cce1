from gweld.services.reference_graph import get_referers, record_reference, reset_references


def test_records_each_origin_once():
    record_reference("/srv/site/main.css", "/index.html")
    record_reference("/srv/site/main.css", "/index.html")
    record_reference("/srv/site/main.css", "/feed.html")

    assert get_referers("/srv/site/main.css") == {"/index.html", "/feed.html"}


def test_unknown_path_has_no_referers():
    assert get_referers("/srv/site/nothing.js") == set()


def test_returned_set_is_a_copy():
    record_reference("/srv/site/main.css", "/index.html")
    get_referers("/srv/site/main.css").add("/other.html")
    assert get_referers("/srv/site/main.css") == {"/index.html"}


def test_reset():
    record_reference("/srv/site/main.css", "/index.html")
    reset_references()
    assert get_referers("/srv/site/main.css") == set()
