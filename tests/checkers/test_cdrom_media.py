import pytest

from vmgate.reactor.checkers import CdromMediaChecker, StorageChecker, get_cdrom_disks, \
                                    get_cdrom_media, get_cdrom_media_names, is_hotpluggable


@pytest.fixture()
def checker():
    return CdromMediaChecker()


@pytest.mark.parametrize('volume, expected', [
    ({'name': 'v', 'dataVolume': {'name': 'dv', 'hotpluggable': True}}, True),
    ({'name': 'v', 'persistentVolumeClaim': {'claimName': 'c', 'hotpluggable': True}}, True),
    ({'name': 'v', 'dataVolume': {'name': 'dv', 'hotpluggable': False}}, False),
    ({'name': 'v', 'dataVolume': {'name': 'dv'}}, False),
    ({'name': 'v', 'persistentVolumeClaim': {'claimName': 'c'}}, False),
    ({'name': 'v', 'containerDisk': {'image': 'iso', 'hotpluggable': True}}, False),
])
def test_hotpluggability(volume, expected):
    assert is_hotpluggable(volume) == expected


def test_cdrom_disks_and_media(vm):
    assert get_cdrom_disks(vm) == [{'name': 'cdrom1', 'cdrom': {'bus': 'sata'}}]
    assert get_cdrom_media(vm) == [
        {'name': 'cdrom1', 'dataVolume': {'name': 'iso-1', 'hotpluggable': True}},
    ]
    assert get_cdrom_media_names(vm) == {'cdrom1'}


def test_non_hotpluggable_volumes_of_cdroms_are_not_media(vm):
    vm['spec']['template']['spec']['volumes'][1] = {'name': 'cdrom1', 'containerDisk': {}}
    assert get_cdrom_disks(vm)
    assert get_cdrom_media(vm) == []


def test_no_changes(checker, old, new):
    assert not checker.has_changed(old, new)


def test_media_swap(checker, old, new, new_tpl):
    new_tpl['volumes'][1]['dataVolume']['name'] = 'iso-2'
    assert checker.has_changed(old, new)

    checker.neutralize(old, new)
    assert not checker.has_changed(old, new)
    assert not StorageChecker().has_changed(old, new)
    assert [v['name'] for v in new_tpl['volumes']] == ['rootdisk']
    assert [d['name'] for d in new_tpl['domain']['devices']['disks']] == ['rootdisk', 'cdrom1']


def test_media_swap_to_another_source(checker, old, new, new_tpl):
    new_tpl['volumes'][1] = {'name': 'cdrom1',
                             'persistentVolumeClaim': {'claimName': 'iso', 'hotpluggable': True}}
    assert checker.has_changed(old, new)
    checker.neutralize(old, new)
    assert not StorageChecker().has_changed(old, new)


def test_media_ejection(checker, old, new, new_tpl):
    del new_tpl['volumes'][1]
    assert checker.has_changed(old, new)
    checker.neutralize(old, new)
    assert not StorageChecker().has_changed(old, new)


def test_media_injection(checker, old, new, old_tpl):
    del old_tpl['volumes'][1]
    assert checker.has_changed(old, new)
    checker.neutralize(old, new)
    assert not StorageChecker().has_changed(old, new)


def test_new_cdrom_drive_is_not_a_media_change(checker, old, new, new_tpl):
    new_tpl['domain']['devices']['disks'].append({'name': 'cdrom2', 'cdrom': {'bus': 'sata'}})
    new_tpl['volumes'].append({'name': 'cdrom2', 'dataVolume': {'name': 'iso-9', 'hotpluggable': True}})
    assert not checker.has_changed(old, new)
    assert StorageChecker().has_changed(old, new)


def test_changed_cdrom_drive_is_not_a_media_change(checker, old, new, new_tpl):
    new_tpl['domain']['devices']['disks'][1]['cdrom']['bus'] = 'scsi'
    new_tpl['volumes'][1]['dataVolume']['name'] = 'iso-2'
    assert not checker.has_changed(old, new)


def test_non_cdrom_volumes_are_not_media(checker, old, new, new_tpl):
    new_tpl['volumes'][0]['containerDisk']['image'] = 'fedora:41'
    assert not checker.has_changed(old, new)


def test_neutralization_keeps_the_drives_and_other_volumes(checker, old, new, new_tpl):
    new_tpl['volumes'][0]['containerDisk']['image'] = 'fedora:41'
    new_tpl['volumes'][1]['dataVolume']['name'] = 'iso-2'
    checker.neutralize(old, new)
    assert new_tpl['volumes'] == [{'name': 'rootdisk', 'containerDisk': {'image': 'fedora:41'}}]
    assert len(new_tpl['domain']['devices']['disks']) == 2
    assert StorageChecker().has_changed(old, new)


@pytest.mark.parametrize('body', ['old', 'new'])
def test_absent_template_is_out_of_scope(checker, body, old, new, new_tpl):
    new_tpl['volumes'][1]['dataVolume']['name'] = 'iso-2'
    {'old': old, 'new': new}[body]['spec'].pop('template')
    assert not checker.has_changed(old, new)
