import pytest

from vmgate.engines.oracles import StaticOracle


class RecordingOracle(StaticOracle):
    """ An in-memory oracle that remembers which tokens were queried. """

    def __init__(self, grants=None):
        super().__init__(grants)
        self.queries = []

    async def authorize(self, identity, namespace, name, token):
        self.queries.append(token)
        return await super().authorize(identity, namespace, name, token)


@pytest.fixture()
def recording_oracle_factory():
    def factory(*tokens):
        return RecordingOracle({'*': tokens})
    return factory


@pytest.fixture()
def template(new):
    """ The template of the new body, as the most often changed place. """
    return new['spec']['template']['spec']
