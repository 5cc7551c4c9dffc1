"""
Тесты индекса сохранённых AO и матчинга по уровням ключей.
"""

import pytest

from tender_triage.dedup import MatchResolver, RecordIndex
from tender_triage.errors import DedupUnavailableError, EmptyIndexError, IndexBuildError
from tender_triage.models import MatchStrategy

UUID = '1f3a2b4c-5d6e-4f70-8a9b-0c1d2e3f4a5b'


@pytest.mark.unit
class TestRecordIndexBuild:
    """Построение индекса одним bulk read"""

    async def test_build(self, memory_store_factory, stored_factory):
        store = memory_store_factory([
            stored_factory(id=1, uuid_procedure=UUID),
            stored_factory(id=2, title='Autre mission', siret='12345678900012', boamp_id='25-12345'),
        ])
        index = await RecordIndex.build(store)

        assert index.size == 2
        assert index.by_uuid[UUID].id == 1
        assert index.by_secondary['12345678900012|2025-03-15'].id == 2
        assert index.by_announcement['25-12345'].id == 2
        assert set(index.by_id) == {1, 2}

    async def test_only_analyzed_records(self, memory_store_factory, stored_factory):
        store = memory_store_factory([
            stored_factory(id=1),
            stored_factory(id=2, title='Brouillon', status='new'),
        ])
        index = await RecordIndex.build(store)
        assert index.size == 1

    async def test_empty_read_is_an_error(self, memory_store_factory):
        with pytest.raises(EmptyIndexError):
            await RecordIndex.build(memory_store_factory([]))

    async def test_empty_allowed_for_first_run(self, memory_store_factory):
        index = await RecordIndex.build(memory_store_factory([]), allow_empty=True)
        assert index.size == 0

    async def test_failed_read(self, failing_store):
        with pytest.raises(IndexBuildError) as exc_info:
            await RecordIndex.build(failing_store)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_title_less_record_not_indexed_by_composite(self, stored_factory):
        index = RecordIndex.from_records([stored_factory(id=3, title='', buyer=None, deadline=None)])
        assert index.by_composite == {}
        assert index.by_id[3].id == 3

    def test_first_record_wins_on_collision(self, stored_factory):
        index = RecordIndex.from_records([stored_factory(id=7), stored_factory(id=8)])
        composite = 'mission de conseil en strategie|2025-03-15|sncf voyageurs'
        assert index.by_composite[composite].id == 7


@pytest.mark.unit
class TestMatchResolver:
    """Порядок уровней: announcement (batch) -> uuid -> composite -> secondary"""

    def test_uuid_beats_composite(self, record_factory, stored_factory):
        index = RecordIndex.from_records([
            stored_factory(id=1),
            stored_factory(id=2, title='Titre différent', uuid_procedure=UUID),
        ])
        resolver = MatchResolver(index=index)
        matches = resolver.resolve_batch([record_factory(uuid_procedure=UUID)])

        assert matches[0].matched_id == 2
        assert matches[0].strategy == MatchStrategy.UUID

    async def test_composite_match(self, record_factory, stored_factory):
        resolver = MatchResolver(index=RecordIndex.from_records([stored_factory(id=3)]))
        match = await resolver.resolve(record_factory())
        assert match.matched_id == 3
        assert match.strategy == MatchStrategy.COMPOSITE

    async def test_secondary_match(self, record_factory, stored_factory):
        index = RecordIndex.from_records([
            stored_factory(id=4, title='Intitulé raccourci', siret='12345678900012'),
        ])
        record = record_factory(identity={'buyer_siret': '12345678900012'})
        match = await MatchResolver(index=index).resolve(record)
        assert match.strategy == MatchStrategy.SECONDARY

    async def test_no_match(self, record_factory, stored_factory):
        index = RecordIndex.from_records([stored_factory(id=1, title='Autre chose')])
        assert await MatchResolver(index=index).resolve(record_factory()) is None

    async def test_announcement_only_in_batch(self, record_factory, stored_factory):
        index = RecordIndex.from_records([
            stored_factory(id=5, title='Autre intitulé', boamp_id='25-12345'),
        ])
        record = record_factory(content={'description': 'Annonce n° 25-12345'})
        resolver = MatchResolver(index=index)

        batch = resolver.resolve_batch([record])
        assert batch[0].strategy == MatchStrategy.ANNOUNCEMENT
        assert batch[0].matched_id == 5
        assert await resolver.resolve(record) is None

    def test_batch_positions(self, record_factory, stored_factory):
        resolver = MatchResolver(index=RecordIndex.from_records([stored_factory(id=1)]))
        records = [record_factory(identity={'title': 'Nouveau'}), record_factory()]
        matches = resolver.resolve_batch(records)
        assert matches[0] is None
        assert matches[1].matched_id == 1

    def test_batch_requires_index(self, record_factory):
        with pytest.raises(DedupUnavailableError):
            MatchResolver().resolve_batch([record_factory()])

    async def test_single_path_uses_store(self, record_factory, stored_factory, memory_store_factory):
        store = memory_store_factory([stored_factory(id=9)])
        match = await MatchResolver(store=store).resolve(record_factory())
        assert match.matched_id == 9
        assert match.strategy == MatchStrategy.COMPOSITE

    async def test_single_path_without_index_or_store(self, record_factory):
        with pytest.raises(DedupUnavailableError):
            await MatchResolver().resolve(record_factory())
