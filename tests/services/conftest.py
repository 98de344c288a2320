"""Shared fixtures for service tests."""

import pytest

BASE_LAYERS = ('basemap-layer', 'seamark-overlay')


class RecordingSurface:
    """In-memory map surface that records calls and can be told to fail."""

    def __init__(self, base_layers=BASE_LAYERS):
        self.calls = []
        self.sources = {}
        self.base_layers = tuple(base_layers)
        self.layers = list(base_layers)
        self.paint = {}
        self.markers = {}
        # (method, id) pairs that raise
        self.fail_on = set()
        self._next_handle = 0

    def _check(self, method, key):
        if (method, key) in self.fail_on:
            raise RuntimeError(f'{method} failed for {key}')

    def _insert(self, layer_id, before_id):
        if before_id is None:
            self.layers.append(layer_id)
        elif before_id in self.layers:
            self.layers.insert(self.layers.index(before_id), layer_id)
        else:
            raise RuntimeError(f'Layer {before_id} does not exist')

    def add_source(self, source_id, spec):
        self.calls.append(('add_source', source_id))
        self._check('add_source', source_id)
        if source_id in self.sources:
            raise RuntimeError(f'Source {source_id} already exists')
        self.sources[source_id] = spec

    def add_layer(self, spec, before_id=None):
        layer_id = spec['id']
        self.calls.append(('add_layer', layer_id, before_id))
        self._check('add_layer', layer_id)
        if layer_id in self.layers:
            raise RuntimeError(f'Layer {layer_id} already exists')
        if spec['source'] not in self.sources:
            raise RuntimeError(f'Source {spec["source"]} does not exist')
        self._insert(layer_id, before_id)
        self.paint[layer_id] = dict(spec.get('paint', {}))

    def has_layer(self, layer_id):
        return layer_id in self.layers

    def move_layer(self, layer_id, before_id=None):
        self.calls.append(('move_layer', layer_id, before_id))
        self.layers.remove(layer_id)
        self._insert(layer_id, before_id)

    def set_paint_property(self, layer_id, name, value):
        self.calls.append(('set_paint_property', layer_id, name, value))
        self._check('set_paint_property', layer_id)
        self.paint[layer_id][name] = value

    def remove_layer(self, layer_id):
        self.calls.append(('remove_layer', layer_id))
        self.layers.remove(layer_id)
        self.paint.pop(layer_id, None)

    def remove_source(self, source_id):
        self.calls.append(('remove_source', source_id))
        del self.sources[source_id]

    def create_marker(self, entity, lat, lon):
        self.calls.append(('create_marker', entity.entity_id))
        self._check('create_marker', entity.entity_id)
        self._next_handle += 1
        handle = f'm{self._next_handle}'
        self.markers[handle] = (entity.entity_id, lat, lon)
        return handle

    def move_marker(self, handle, lat, lon):
        self.calls.append(('move_marker', handle))
        entity_id, _, _ = self.markers[handle]
        self.markers[handle] = (entity_id, lat, lon)

    def remove_marker(self, handle):
        self.calls.append(('remove_marker', handle))
        del self.markers[handle]

    def chart_layers(self):
        return [lid for lid in self.layers if lid.startswith('chart-layer-')]

    def marker_positions(self):
        return {entity_id: (lat, lon) for entity_id, lat, lon in self.markers.values()}

    def rebuild(self):
        """Drop everything, as a style swap does."""
        self.sources.clear()
        self.layers = list(self.base_layers)
        self.paint.clear()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def bare_surface():
    """Surface whose style has no seamark overlay."""
    return RecordingSurface(base_layers=('basemap-layer',))
