import pytest

from conftest import InMemorySampleRepository, make_sample
from data_pipeline.repositories import MongoSampleRepository
from data_pipeline.schemas import parameter_names


class FakeCursor:

    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction):
        self.docs = sorted(self.docs, key=lambda d: d[key], reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return list(self.docs)


class RecordingCollection:
    """Keeps the last query and matches only on `parameter`."""

    def __init__(self, docs):
        self.docs = docs
        self.queries = []

    def find(self, query, projection=None):
        self.queries.append(query)
        wanted = query.get("parameter", {}).get("$in", [])
        return FakeCursor([d for d in self.docs if d["parameter"] in wanted])


def test_parameter_names_include_aliases():
    assert parameter_names("pm25") == ["pm25", "pm", "pm2.5", "pm2_5"]
    assert parameter_names("PM") == ["pm25", "pm", "pm2.5", "pm2_5"]
    assert parameter_names("no2") == ["no2"]


@pytest.mark.asyncio
async def test_mongo_find_samples_matches_stored_aliases(location, now):
    docs = [
        make_sample(location, "pm25", 11.0, now).to_document(),
        dict(make_sample(location, "pm25", 12.0, now).to_document(), parameter="pm"),
        dict(make_sample(location, "pm25", 13.0, now).to_document(), parameter="pm2_5"),
        make_sample(location, "no2", 40.0, now).to_document(),
    ]
    collection = RecordingCollection(docs)
    repo = MongoSampleRepository({"samples": collection})

    found = await repo.find_samples("pm", location.geobox(), now)

    assert collection.queries[0]["parameter"] == {"$in": ["pm25", "pm", "pm2.5", "pm2_5"]}
    assert collection.queries[0]["quality_flag"]["$in"]
    assert sorted(s.value for s in found) == [11.0, 12.0, 13.0]
    assert {s.parameter for s in found} == {"pm25"}


@pytest.mark.asyncio
async def test_in_memory_find_samples_matches_aliases(location, now):
    repo = InMemorySampleRepository([
        make_sample(location, "pm", 12.0, now),
        make_sample(location, "pm25", 13.0, now),
        make_sample(location, "no2", 40.0, now),
    ])

    found = await repo.find_samples("pm25", location.geobox(), now)
    assert sorted(s.value for s in found) == [12.0, 13.0]
