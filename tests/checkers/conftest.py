import pytest

TEMPLATE_SPEC = ('spec', 'template', 'spec')


@pytest.fixture()
def old_tpl(old):
    return old['spec']['template']['spec']


@pytest.fixture()
def new_tpl(new):
    return new['spec']['template']['spec']
