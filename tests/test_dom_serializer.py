import pytest
from screenflow.dom import DomNode, DomSerializer
from screenflow.dom.dom_serializer import inject_base_href, load_dom_document
from .fakes import FakeDriver, page_tree, snapshot_result


class TestNormalize:

    def setup_method(self):
        self.serializer = DomSerializer()

    def test_keeps_style_subset_for_styled_tags(self):
        body = self.serializer.normalize(page_tree())

        button = body.element_children[1]
        assert button.tag == 'button'
        assert button.css == {'color': 'rgb(59, 130, 246)', 'padding': '8px'}
        assert button.rect == {'x': 10, 'y': 60, 'w': 120, 'h': 36}
        assert button.direct_text == 'Sign in'
        assert body.css == {}

    def test_drops_scripts_tool_overlays_and_handlers(self):
        raw = {'t': 'body', 'c': [
            {'t': 'script', 'c': [{'t': '#text', 'v': 'alert(1)'}]},
            {'t': 'div', 'a': {'id': 'replay-wait-overlay'}},
            {'t': 'div', 'a': {'onclick': 'go()', 'data-v-1a2b': '', 'data-testid': 'card', 'class': 'card'}},
            {'t': '#text', 'v': '   '},
        ]}

        body = self.serializer.normalize(raw)

        assert len(body.children) == 1
        assert body.children[0].attrs == {'data-testid': 'card', 'class': 'card'}

    def test_hidden_elements_carry_no_style(self):
        raw = {'t': 'body', 'c': [
            {'t': 'span', 'hidden': True, 'css': {'color': 'red'}, 'rect': {'x': 0, 'y': 0, 'w': 0, 'h': 0}},
        ]}

        span = self.serializer.normalize(raw).children[0]

        assert span.hidden
        assert span.css == {}
        assert span.rect is None

    def test_boring_values_and_unknown_props_dropped(self):
        raw = {'t': 'p', 'css': {'color': 'red', 'margin': '0px', 'display': 'none ', 'cursor': 'pointer',
                                 'backgroundColor': 'rgba(0,0,0,0)'}}

        assert self.serializer.normalize(raw).css == {'color': 'red'}

    def test_form_state_only_on_form_tags(self):
        raw = {'t': 'form', 'val': 'x', 'c': [
            {'t': 'input', 'a': {'type': 'checkbox'}, 'checked': True, 'val': 'on'},
        ]}

        form = self.serializer.normalize(raw)

        assert form.value is None
        assert form.children[0].checked
        assert form.children[0].value == 'on'

    def test_unusable_rect_is_dropped(self):
        raw = {'t': 'button', 'rect': {'x': 'left'}}

        assert self.serializer.normalize(raw).rect is None
        assert self.serializer.stats['fields_dropped'] == 1

    def test_normalize_is_idempotent(self):
        first = self.serializer.normalize(page_tree(extra_children=[
            {'t': 'input', 'a': {'id': 'email', 'type': 'email'}, 'val': 'a@b.c',
             'css': {'border': '1px solid'}, 'rect': {'x': 1.4, 'y': 2.6, 'w': 3, 'h': 4}},
        ]))

        second = self.serializer.normalize(first.to_dict())

        assert second == first
        assert second.to_dict() == first.to_dict()

    def test_depth_limit(self):
        serializer = DomSerializer(max_depth=2)
        raw = {'t': 'div', 'c': [{'t': 'div', 'c': [{'t': 'div', 'c': [{'t': 'div'}]}]}]}

        node = serializer.normalize(raw)

        assert node.count_elements() == 3


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_snapshot_normalizes_tree(self):
        driver = FakeDriver(snapshots=[snapshot_result(url='https://app.example.com/home')])

        snapshot = await DomSerializer().snapshot(driver)

        assert snapshot.url == 'https://app.example.com/home'
        assert snapshot.dom.tag == 'body'
        assert snapshot.viewport == {'w': 1440, 'h': 900}
        assert snapshot.dom_document()['body']['c'][0]['t'] == 'h1'


class TestSerializeHtml:

    def test_static_tree_from_saved_html(self):
        html = """<html><head><script>x()</script></head><body>
            <!-- banner -->
            <h1 class="title">Orders</h1>
            <div hidden><p>secret</p></div>
            <p style="display: none">gone</p>
            <input id="q" value="shoes" checked>
            <select name="size"><option value="s">S</option><option value="m" selected>M</option></select>
            <textarea>note</textarea>
        </body></html>"""

        body = DomSerializer().serialize_html(html)

        tags = [child.tag for child in body.element_children]
        assert tags == ['h1', 'div', 'p', 'input', 'select', 'textarea']
        assert body.element_children[0].attrs == {'class': 'title'}
        assert body.element_children[0].direct_text == 'Orders'
        assert body.element_children[1].hidden
        assert body.element_children[2].hidden
        assert body.element_children[3].value == 'shoes'
        assert body.element_children[3].checked
        assert body.element_children[4].value == 'm'
        assert body.element_children[5].value == 'note'
        assert all(not node.css and node.rect is None for node in body.iter_elements())

    def test_fragment_is_wrapped_in_body(self):
        body = DomSerializer().serialize_html('<p>one</p><p>two</p>')

        assert body.tag == 'body'
        assert [child.direct_text for child in body.children] == ['one', 'two']


class TestHelpers:

    def test_inject_base_href_after_head(self):
        html = '<html><head lang="en"><title>x</title></head></html>'

        result = inject_base_href(html, 'https://app.example.com')

        assert '<head lang="en"><base href="https://app.example.com/">' in result

    def test_inject_base_href_keeps_existing_base(self):
        html = '<head><base href="/app/"></head>'

        assert inject_base_href(html, 'https://app.example.com') == html

    def test_load_dom_document(self):
        document = {'body': {'t': 'body', 'c': [{'t': '#text', 'v': 'hi'}]}, 'url': 'u'}

        assert load_dom_document(document) == DomNode('body', children=[DomNode.text_node('hi')])
        assert load_dom_document(None) is None
