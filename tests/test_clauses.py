import json

import pytest

from prest import statements
from prest.clauses import (
    BodyEmptyError,
    QueryError,
    Request,
    count_by_request,
    database_clause,
    distinct_clause,
    is_invalid_identifier,
    join_by_request,
    order_by_request,
    parse_batch_insert_request,
    parse_insert_request,
    query_operator,
    returning_by_request,
    schema_clause,
    select_fields,
    set_by_request,
    where_by_request,
)


def body_request(data):
    return Request.from_url("/", json.dumps(data))


def test_from_url_collects_repeated_keys():
    request = Request.from_url("/t?a=1&a=2&b=%25x%25", b"{}")
    assert request.query == {"a": ["1", "2"], "b": ["%x%"]}
    assert request.body == b"{}"


@pytest.mark.parametrize(
    "url, where, values",
    [
        (
            "/databases?dbname=$eq.prest&test=$eq.cool",
            '"dbname" = $1 AND "test" = $2',
            ["prest", "cool"],
        ),
        (
            "/databases?dbname=$eq.prest&c.test=$eq.cool",
            '"dbname" = $1 AND "c"."test" = $2',
            ["prest", "cool"],
        ),
        ("/prest-test/public/test5?name=$eq.prest tester", '"name" = $1', ["prest tester"]),
        (
            "/prest-test/public/test5?name=$eq.prest.txt tester",
            '"name" = $1',
            ["prest.txt tester"],
        ),
        (
            "/prest-test/public/test5?name=$like.%25val%25&phonenumber=123456",
            '"name" LIKE $1 AND "phonenumber" = $2',
            ["%val%", "123456"],
        ),
        (
            "/prest-test/public/test5?name=$ilike.%25vAl%25&phonenumber=123456",
            '"name" ILIKE $1 AND "phonenumber" = $2',
            ["%vAl%", "123456"],
        ),
        (
            "/prest-test/public/table?created_at='$gte.1997-11-03'&created_at='$lte.1997-12-05'",
            '"created_at" >= $1 AND "created_at" <= $2',
            ["'1997-11-03'", "'1997-12-05'"],
        ),
        ("/prest-test/public/test5?name:tsquery=prest", "name @@ to_tsquery('prest')", []),
        (
            "/t?name:tsquery=prest&title$english:tsquery=word",
            "name @@ to_tsquery('prest') AND title @@ to_tsquery('english', 'word')",
            [],
        ),
    ],
)
def test_where_by_request(url, where, values):
    assert where_by_request(Request.from_url(url), 1) == (where, values)


def test_where_by_request_jsonb_values_come_first():
    url = "/prest-test/public/test_jsonb_bug?name=$eq.goku&data->>description:jsonb=$eq.testing"
    where, values = where_by_request(Request.from_url(url), 1)
    assert where == "\"name\" = $1 AND \"data\"->>'description' = $2"
    assert values == ["testing", "goku"]


def test_where_by_request_in_any_and_null():
    url = "/t?id=$in.1,2,3&tags=$any.a,b&deleted=$null."
    where, values = where_by_request(Request.from_url(url), 1)
    assert where == '"id" IN ($1,$2,$3) AND "tags" = ANY ($4) AND "deleted" IS NULL'
    assert values == ["1", "2", "3", '{"a","b"}']


def test_where_by_request_skips_underscore_keys():
    where, values = where_by_request(Request.from_url("/t?_page=1&a=$gt.5"), 3)
    assert (where, values) == ('"a" > $3', ["5"])


@pytest.mark.parametrize(
    "url",
    [
        "/prest-test/public/test_jsonb_bug?name=$eq.test&data->>description:bla",
        "/prest-test/public/test_jsonb_bug?name=$eq.test&data->>0description:jsonb=$eq.bla",
        "/prest-test/public/test?0name=$eq.prest",
        "/t?name=$foo.bar",
    ],
)
def test_invalid_where_by_request(url):
    with pytest.raises(QueryError):
        where_by_request(Request.from_url(url), 1)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("/prest-test/public/test_group_by_table", ""),
        ("/prest-test/public/test_group_by_table?_returning=*", "*"),
        ("/prest-test/public/test_group_by_table?_returning=age", "age"),
        (
            "/prest-test/public/test_group_by_table?_returning=age&_returning=salary",
            "age, salary",
        ),
    ],
)
def test_returning_by_request(url, expected):
    assert returning_by_request(Request.from_url(url)) == expected


def test_set_by_request_several_fields():
    syntax, values = set_by_request(body_request({"test": "prest", "dbname": "prest"}), 1)
    assert syntax == '"test"=$1, "dbname"=$2'
    assert values == ["prest", "prest"]


def test_set_by_request_alias_and_array():
    syntax, values = set_by_request(body_request({"c.name": "prest", "tags": ["a", "b"]}), 4)
    assert syntax == '"c"."name"=$4, "tags"=$5'
    assert values == ["prest", '{"a","b"}']


@pytest.mark.parametrize("data", [None, {}])
def test_set_by_request_empty_body(data):
    with pytest.raises(BodyEmptyError):
        set_by_request(body_request(data), 1)


def test_set_by_request_invalid_identifier():
    with pytest.raises(QueryError, match="Set: Invalid identifier"):
        set_by_request(body_request({"0name": "x"}), 1)


def test_set_by_request_malformed_body():
    with pytest.raises(QueryError):
        set_by_request(Request.from_url("/", b"not json"), 1)


def test_parse_insert_request():
    cols, placeholders, values = parse_insert_request(
        body_request({"test": "prest", "dbname": "prest"})
    )
    assert cols == '"test", "dbname"'
    assert placeholders == "($1,$2)"
    assert values == ["prest", "prest"]


def test_parse_insert_request_one_field():
    assert parse_insert_request(body_request({"name": "prest"})) == ('"name"', "($1)", ["prest"])


def test_parse_insert_request_empty_body():
    with pytest.raises(BodyEmptyError):
        parse_insert_request(body_request(None))


def test_parse_insert_request_invalid_identifier():
    with pytest.raises(QueryError, match="Insert: Invalid identifier"):
        parse_insert_request(body_request({"a;b": 1}))


def test_parse_batch_insert_request():
    cols, placeholders, values = parse_batch_insert_request(
        body_request([{"pumpkin": "prest", "name": "prest"}])
    )
    assert cols == '"name","pumpkin"'
    assert placeholders == "($1,$2)"
    assert values == ["prest", "prest"]


def test_parse_batch_insert_request_many_records():
    cols, placeholders, values = parse_batch_insert_request(
        body_request([{"a": 1, "b": [1, 2]}, {"a": 3}])
    )
    assert cols == '"a","b"'
    assert placeholders == "($1,$2),($3,$4)"
    assert values == [1, "{1,2}", 3, None]


@pytest.mark.parametrize("data", [[], None])
def test_parse_batch_insert_request_empty(data):
    with pytest.raises(BodyEmptyError):
        parse_batch_insert_request(body_request(data))


@pytest.mark.parametrize(
    "value, expected",
    [
        ("fildName", False),
        ("_9fildName", False),
        ("_fild.Name", False),
        ("0fildName", True),
        ("fild'Name", True),
        ('fild"Name', True),
        ("fild;Name", True),
        ("SUM(test)", False),
        ('SUM("test")', False),
        ("_123456789_123456789_123456789_123456789_123456789_123456789_12345", True),
        ("", True),
    ],
)
def test_is_invalid_identifier(value, expected):
    assert is_invalid_identifier(value) is expected


def test_is_invalid_identifier_checks_every_argument():
    assert is_invalid_identifier("good", "0bad") is True
    assert is_invalid_identifier("good", "fine") is False


@pytest.mark.parametrize(
    "op, expected",
    [
        ("$eq", "="),
        ("$ne", "!="),
        ("$gt", ">"),
        ("$gte", ">="),
        ("$lt", "<"),
        ("$lte", "<="),
        ("$in", "IN"),
        ("$nin", "NOT IN"),
        ("$any", "ANY"),
        ("$some", "SOME"),
        ("$all", "ALL"),
        ("$notnull", "IS NOT NULL"),
        ("$null", "IS NULL"),
        ("$true", "IS TRUE"),
        ("$nottrue", "IS NOT TRUE"),
        ("$false", "IS FALSE"),
        ("$notfalse", "IS NOT FALSE"),
        ("$like", "LIKE"),
        ("$ilike", "ILIKE"),
    ],
)
def test_query_operator(op, expected):
    assert query_operator(op) == expected


def test_query_operator_invalid():
    with pytest.raises(QueryError, match="Invalid operator"):
        query_operator("!lol")


@pytest.mark.parametrize(
    "url, expected",
    [
        (
            "/prest-test/public/test?_join=inner:test2:test2.name:$eq:test.name",
            ' INNER JOIN "test2" ON "test2"."name" = "test"."name" ',
        ),
        (
            "/prest-test/public/test?_join=inner:public.test2:test2.name:$eq:test.name",
            ' INNER JOIN "public"."test2" ON "test2"."name" = "test"."name" ',
        ),
    ],
)
def test_join_by_request(url, expected):
    assert join_by_request(Request.from_url(url)) == [expected]


def test_join_by_request_empty():
    assert join_by_request(Request.from_url("/prest-test/public/test?_join")) == []


@pytest.mark.parametrize(
    "url",
    [
        "/prest-test/public/test?_join=inner:test2:test2.name:$eq",
        "/prest-test/public/test?_join=inner:test2:test2.name:notexist:test.name",
        "/prest-test/public/test?_join=inner:0test2:test2.name:notexist:test.name",
        "/prest-test/public/test?_join=inner:test2:name:$eq:test.name",
    ],
)
def test_join_by_request_errors(url):
    with pytest.raises(QueryError):
        join_by_request(Request.from_url(url))


def test_join_with_where():
    request = Request.from_url(
        "/prest-test/public/test?_join=inner:test2:test2.name:$eq:test.name"
        "&name=$eq.test&data->>description:jsonb=$eq.bla"
    )
    assert join_by_request(request) == [
        ' INNER JOIN "test2" ON "test2"."name" = "test"."name" '
    ]
    where, values = where_by_request(request, 1)
    assert where == "\"name\" = $1 AND \"data\"->>'description' = $2"
    assert sorted(values) == ["bla", "test"]


@pytest.mark.parametrize(
    "fields, expected",
    [
        (["test"], 'SELECT "test" FROM'),
        (["c.test"], 'SELECT "c"."test" FROM'),
        (["test", "test02"], 'SELECT "test","test02" FROM'),
        (["*"], "SELECT * FROM"),
        (['MAX("age")'], 'SELECT MAX("age") FROM'),
    ],
)
def test_select_fields(fields, expected):
    assert select_fields(fields) == expected


@pytest.mark.parametrize("fields", [["0test", "test02"], []])
def test_select_fields_errors(fields):
    with pytest.raises(QueryError):
        select_fields(fields)


def test_order_by_request():
    request = Request.from_url("/prest-test/public/test?_order=name,-number")
    assert order_by_request(request) == ' ORDER BY  "name" , "number" DESC'


def test_order_by_request_alias():
    request = Request.from_url("/prest-test/public/test?_order=c.name,-c.number")
    assert order_by_request(request) == ' ORDER BY  "c"."name" , "c"."number" DESC'


def test_order_by_request_empty():
    assert order_by_request(Request.from_url("/prest-test/public/test?_order=")) == ""


def test_order_by_request_invalid():
    with pytest.raises(QueryError):
        order_by_request(Request.from_url("/prest-test/public/test?_order=0name"))


@pytest.mark.parametrize(
    "url, expected",
    [
        ("/prest-test/public/test5?_count=celphone", 'SELECT COUNT("celphone") FROM'),
        ("/prest-test/public/test5?_count=*", "SELECT COUNT(*) FROM"),
        ("/prest-test/public/test5?_count=", ""),
        ("/prest-test/public/test5?_count=c.a,b", 'SELECT COUNT("c"."a","b") FROM'),
    ],
)
def test_count_by_request(url, expected):
    assert count_by_request(Request.from_url(url)) == expected


def test_count_by_request_invalid():
    with pytest.raises(QueryError):
        count_by_request(Request.from_url("/prest-test/public/test5?_count=celphone,0name"))


def test_database_clause():
    assert database_clause(Request.from_url("/databases")) == (
        statements.DATABASES_SELECT % statements.FIELD_DATABASE_NAME,
        False,
    )
    assert database_clause(Request.from_url("/databases?_count=*")) == (
        "\nSELECT\n\tCOUNT(datname)\nFROM\n\tpg_database",
        True,
    )


def test_schema_clause():
    assert schema_clause(Request.from_url("/schemas")) == (
        "\nSELECT\n\tschema_name\nFROM\n\tinformation_schema.schemata",
        False,
    )
    assert schema_clause(Request.from_url("/schemas?_count=*")) == (
        statements.SCHEMAS_SELECT % statements.FIELD_COUNT_SCHEMA_NAME,
        True,
    )


@pytest.mark.parametrize(
    "url, expected",
    [
        ("/databases?dbname=prest-test&test=cool&_distinct=true", "SELECT DISTINCT"),
        ("/databases?dbname=prest-test&test=cool&_distinct=false", ""),
        ("/databases?dbname=prest-test&test=cool", ""),
    ],
)
def test_distinct_clause(url, expected):
    assert distinct_clause(Request.from_url(url)) == expected