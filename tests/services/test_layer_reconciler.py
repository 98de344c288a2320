"""Tests for services.layer_reconciler."""

import pytest

from domain.models import ChartLayer
from services.layer_reconciler import (
    AddLayer,
    AddSource,
    LayerSnapshot,
    MoveLayer,
    RemoveLayer,
    RemoveSource,
    UpdateOpacity,
    forget_layers,
    reconcile_layers,
)

CEILING = 'seamark-overlay'


def _chart(chart_id, bounds='0,0,10,10', **kw):
    return ChartLayer(chart_id=chart_id, raw_bounds=bounds, **kw)


def _ops_of(plan, op_type):
    return [op for op in plan.operations if isinstance(op, op_type)]


def _settle(layers, **kw):
    """Plan from an empty surface and return the resulting snapshot."""
    return reconcile_layers(layers, LayerSnapshot(), ceiling_layer_id=CEILING, **kw).snapshot


class TestAdditions:
    """Adding charts to an empty surface."""

    def test_new_chart_adds_source_and_layer(self):
        """Should add a raster source and a layer below the ceiling."""
        plan = reconcile_layers([_chart('a', opacity=0.5)], LayerSnapshot(), ceiling_layer_id=CEILING)
        assert plan.operations[0] == AddSource(
            'chart-src-a',
            {
                'type': 'raster',
                'tiles': ['mbtiles://a/{z}/{x}/{y}'],
                'tileSize': 256,
                'minzoom': 0,
                'maxzoom': 22,
                'bounds': [0, 0, 10, 10],
            },
        )
        assert plan.operations[1] == AddLayer(
            layer_id='chart-layer-a',
            source_id='chart-src-a',
            before_id=CEILING,
            opacity=0.5,
            min_zoom=0,
            max_zoom=22,
        )
        assert list(plan.snapshot.registered) == ['a']

    def test_layer_spec(self):
        """Should carry the opacity into the layer paint."""
        plan = reconcile_layers([_chart('a', opacity=0.5)], LayerSnapshot())
        spec = _ops_of(plan, AddLayer)[0].spec()
        assert spec['paint'] == {'raster-opacity': 0.5}
        assert spec['source'] == 'chart-src-a'

    def test_no_ceiling_adds_on_top(self):
        """Should add on top when there is no ceiling."""
        plan = reconcile_layers([_chart('a')], LayerSnapshot())
        assert _ops_of(plan, AddLayer)[0].before_id is None

    def test_additions_go_top_down(self):
        """Should add the highest chart first and chain the rest below it."""
        plan = reconcile_layers(
            [_chart('a', z_order=0), _chart('b', z_order=1)],
            LayerSnapshot(),
            ceiling_layer_id=CEILING,
        )
        adds = _ops_of(plan, AddLayer)
        assert [(op.layer_id, op.before_id) for op in adds] == [
            ('chart-layer-b', CEILING),
            ('chart-layer-a', 'chart-layer-b'),
        ]
        assert plan.snapshot.order == ('a', 'b')

    def test_equal_z_order_keeps_input_order(self):
        """Should keep input order for equal z-order."""
        plan = reconcile_layers([_chart('x'), _chart('y')], LayerSnapshot())
        assert plan.snapshot.order == ('x', 'y')

    def test_new_chart_inserted_below_next_higher(self):
        """Should insert a new chart below the next higher chart only."""
        snapshot = _settle([_chart('a', z_order=0), _chart('c', z_order=2)])
        plan = reconcile_layers(
            [_chart('a', z_order=0), _chart('b', z_order=1), _chart('c', z_order=2)],
            snapshot,
            ceiling_layer_id=CEILING,
        )
        assert plan.operations == [
            AddSource('chart-src-b', _ops_of(plan, AddSource)[0].spec),
            AddLayer('chart-layer-b', 'chart-src-b', 'chart-layer-c', 1.0, 0, 22),
        ]
        assert plan.snapshot.order == ('a', 'b', 'c')

    def test_split_chart_gets_two_slots(self):
        """Should add both halves of a split chart as one unit."""
        plan = reconcile_layers(
            [_chart('dl', bounds='175,-10,-175,10')],
            LayerSnapshot(),
            ceiling_layer_id=CEILING,
        )
        sources = _ops_of(plan, AddSource)
        assert {s.source_id: s.spec['bounds'] for s in sources} == {
            'chart-src-dl-w': [175, -10, 180, 10],
            'chart-src-dl-e': [-180, -10, -175, 10],
        }
        adds = _ops_of(plan, AddLayer)
        assert [(op.layer_id, op.before_id) for op in adds] == [
            ('chart-layer-dl-e', CEILING),
            ('chart-layer-dl-w', 'chart-layer-dl-e'),
        ]
        assert plan.snapshot.registered['dl'].lowest_layer_id == 'chart-layer-dl-w'


class TestSkippedCharts:
    """Charts that never reach the surface."""

    def test_invalid_bounds_skipped_others_added(self):
        """Should skip a chart with malformed bounds and add the rest."""
        plan = reconcile_layers([_chart('bad', bounds='1,2,3'), _chart('ok')], LayerSnapshot())
        assert list(plan.snapshot.registered) == ['ok']

    def test_out_of_range_bounds_skipped(self):
        """Should skip a chart with out-of-range bounds."""
        plan = reconcile_layers([_chart('bad', bounds='0,0,200,10')], LayerSnapshot())
        assert plan.is_empty

    def test_missing_bounds_skipped(self):
        """Should skip a chart without bounds."""
        plan = reconcile_layers([_chart('none', bounds=None)], LayerSnapshot())
        assert plan.is_empty

    def test_disabled_not_added(self):
        """Should not add a disabled chart."""
        plan = reconcile_layers([_chart('a', enabled=False)], LayerSnapshot())
        assert plan.is_empty

    def test_duplicate_id_last_wins(self):
        """Should keep the last chart for a repeated id."""
        plan = reconcile_layers([_chart('a', opacity=0.2), _chart('a', opacity=0.8)], LayerSnapshot())
        assert len(_ops_of(plan, AddLayer)) == 1
        assert plan.snapshot.registered['a'].opacity == 0.8


class TestUpdates:
    """Reconciling against an existing snapshot."""

    def test_idempotent(self):
        """Should plan nothing when rerun on its own snapshot."""
        layers = [_chart('a', z_order=1), _chart('dl', bounds='175,-10,-175,10')]
        snapshot = _settle(layers)
        assert reconcile_layers(layers, snapshot, ceiling_layer_id=CEILING).is_empty

    def test_opacity_only_change(self):
        """Should update opacity without recreating the source."""
        snapshot = _settle([_chart('a', opacity=1.0)])
        plan = reconcile_layers([_chart('a', opacity=0.4)], snapshot, ceiling_layer_id=CEILING)
        assert plan.operations == [UpdateOpacity('chart-layer-a', 0.4)]
        assert plan.snapshot.registered['a'].opacity == 0.4

    def test_split_opacity_updates_both_halves(self):
        """Should update opacity on both halves of a split chart."""
        snapshot = _settle([_chart('dl', bounds='175,-10,-175,10')])
        plan = reconcile_layers([_chart('dl', bounds='175,-10,-175,10', opacity=0.3)], snapshot)
        assert {op.layer_id for op in plan.operations} == {'chart-layer-dl-w', 'chart-layer-dl-e'}

    def test_disabled_chart_removed(self):
        """Should remove the layer before its source when a chart is disabled."""
        snapshot = _settle([_chart('a')])
        plan = reconcile_layers([_chart('a', enabled=False)], snapshot)
        assert plan.operations == [RemoveLayer('chart-layer-a'), RemoveSource('chart-src-a')]
        assert plan.snapshot.registered == {}

    def test_all_hidden_removes_everything(self):
        """Should remove every slot when all charts are hidden."""
        snapshot = _settle([_chart('a'), _chart('dl', bounds='175,-10,-175,10')])
        plan = reconcile_layers([_chart('a'), _chart('dl', bounds='175,-10,-175,10')], snapshot, all_hidden=True)
        assert len(_ops_of(plan, RemoveLayer)) == 3
        assert len(_ops_of(plan, RemoveSource)) == 3
        assert not _ops_of(plan, AddLayer)

    def test_bounds_change_readds(self):
        """Should remove and re-add a chart whose bounds changed."""
        snapshot = _settle([_chart('a')])
        plan = reconcile_layers([_chart('a', bounds='0,0,20,20')], snapshot, ceiling_layer_id=CEILING)
        kinds = [type(op) for op in plan.operations]
        assert kinds == [RemoveLayer, RemoveSource, AddSource, AddLayer]
        assert _ops_of(plan, AddSource)[0].spec['bounds'] == [0, 0, 20, 20]

    def test_zoom_change_readds(self):
        """Should re-add a chart whose zoom window changed."""
        snapshot = _settle([_chart('a')])
        plan = reconcile_layers([_chart('a', max_zoom=16)], snapshot)
        assert _ops_of(plan, RemoveLayer)
        assert _ops_of(plan, AddLayer)[0].max_zoom == 16

    def test_restack_on_z_order_change(self):
        """Should move layers top-down when z-order changes."""
        snapshot = _settle([_chart('a', z_order=0), _chart('b', z_order=1)])
        plan = reconcile_layers(
            [_chart('a', z_order=2), _chart('b', z_order=1)],
            snapshot,
            ceiling_layer_id=CEILING,
        )
        assert plan.operations == [
            MoveLayer('chart-layer-a', CEILING),
            MoveLayer('chart-layer-b', 'chart-layer-a'),
        ]
        assert plan.snapshot.order == ('b', 'a')

    def test_removals_come_before_additions(self):
        """Should order removals before additions."""
        snapshot = _settle([_chart('a')])
        plan = reconcile_layers([_chart('b')], snapshot)
        kinds = [type(op) for op in plan.operations]
        assert kinds == [RemoveLayer, RemoveSource, AddSource, AddLayer]


class TestEpoch:
    """Surface rebuilds."""

    def test_new_epoch_readds_once(self):
        """Should re-add everything once on a new epoch."""
        layers = [_chart('a')]
        snapshot = _settle(layers)
        plan = reconcile_layers(layers, snapshot, epoch=1, ceiling_layer_id=CEILING)
        assert not _ops_of(plan, RemoveLayer)
        assert len(_ops_of(plan, AddLayer)) == 1
        assert plan.snapshot.epoch == 1

        again = reconcile_layers(layers, plan.snapshot, epoch=1, ceiling_layer_id=CEILING)
        assert again.is_empty

    def test_same_epoch_is_noop(self):
        """Should not reset the snapshot for the same epoch."""
        layers = [_chart('a')]
        snapshot = _settle(layers)
        assert reconcile_layers(layers, snapshot, epoch=0).is_empty


class TestForgetLayers:
    """Tests for forget_layers()."""

    def test_forgotten_chart_is_retried(self):
        """Should add a forgotten chart again below the next higher one."""
        layers = [_chart('a'), _chart('b', z_order=1)]
        snapshot = forget_layers(_settle(layers), ['a'])
        assert snapshot.order == ('b',)
        plan = reconcile_layers(layers, snapshot, ceiling_layer_id=CEILING)
        assert [op.layer_id for op in _ops_of(plan, AddLayer)] == ['chart-layer-a']
        assert _ops_of(plan, AddLayer)[0].before_id == 'chart-layer-b'

    def test_nothing_to_forget(self):
        """Should return the same snapshot when nothing is forgotten."""
        snapshot = _settle([_chart('a')])
        assert forget_layers(snapshot, []) is snapshot


@pytest.mark.parametrize('bounds', ['0,0,10,10', '175,-10,-175,10', '-174.5,-10,175.5,10'])
def test_every_slot_is_non_crossing(bounds):
    """Should only emit source bounds with west <= east."""
    plan = reconcile_layers([_chart('a', bounds=bounds)], LayerSnapshot())
    for op in _ops_of(plan, AddSource):
        west, _, east, _ = op.spec['bounds']
        assert west <= east
