"""
Field categories of VirtualMachines and their permission checkers.

Every checker owns a fixed footprint of fields in the VirtualMachine's spec,
and knows how to detect changes there and how to erase ("neutralize") them.
Each footprint is granted by its own `AuthorizationToken`.

The checkers are not independent: some footprints are subsets of others.
Specifically, the CD-ROM media (hotpluggable volumes of CD-ROM drives)
is a part of the storage (all volumes, disks, filesystems). The subset checkers
must go before their supersets in the pipeline: when the subset's changes are
permitted, they are erased from both copies, so that the superset checker
does not see them anymore (and does not need its own, wider permission).

The list of checkers is fixed: it is not a policy language.
"""
from typing import Any, Collection, Iterable, List, Mapping, MutableMapping, Optional, Set, Tuple

from vmgate.structs import dicts, tokens

# The VirtualMachineInstance template, where most of the footprints are.
TEMPLATE_SPEC = ('spec', 'template', 'spec')

# Where the CD-ROM drives and their media are (among other disks and volumes).
CDROM_DISKS = TEMPLATE_SPEC + ('domain', 'devices', 'disks')
CDROM_MEDIA = TEMPLATE_SPEC + ('volumes',)


class FieldCategoryChecker:
    """
    A category of fields that are granted as a whole.

    The footprint is declared as the field paths in the class attributes,
    relative to the ``scope`` (the VM's root by default). If the scope is absent
    in either of the bodies, nothing is detected and nothing is neutralized:
    then, the difference remains visible to the final check of the pipeline.

    Both operations work on the bodies as they are at the moment of the call,
    i.e. with all the neutralizations done by the preceding checkers.
    """
    name: str
    token: tokens.AuthorizationToken
    scope: dicts.FieldPath = ()
    fields: Collection[dicts.FieldPath] = ()

    # The token of a checker whose footprint includes this checker's footprint.
    superset: Optional[tokens.AuthorizationToken] = None

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.name!r}>'

    def in_scope(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
        if not self.scope:
            return True
        old_scope = dicts.resolve(old, self.scope, None)
        new_scope = dicts.resolve(new, self.scope, None)
        return isinstance(old_scope, Mapping) and isinstance(new_scope, Mapping)

    def has_changed(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
        if not self.in_scope(old, new):
            return False
        return any(
            not dicts.semantic_equal(dicts.resolve(old, self.scope + field, None),
                                     dicts.resolve(new, self.scope + field, None),
                                     self.scope + field)
            for field in self.fields
        )

    def neutralize(self, old: MutableMapping[str, Any], new: MutableMapping[str, Any]) -> None:
        if not self.in_scope(old, new):
            return
        for field in self.fields:
            dicts.discard(old, self.scope + field)
            dicts.discard(new, self.scope + field)


class StorageChecker(FieldCategoryChecker):
    """
    All storage, including the CD-ROMs and filesystems (a superset).

    * Volumes: PVCs, DataVolumes, ConfigMaps, Secrets, etc.
    * Disks: how the volumes are attached to the VM.
    * Filesystems: virtio-fs mounts.
    """
    name = 'storage'
    token = tokens.AuthorizationToken.STORAGE
    scope = TEMPLATE_SPEC
    fields = [
        ('volumes',),
        ('domain', 'devices', 'disks'),
        ('domain', 'devices', 'filesystems'),
    ]


class NetworkChecker(FieldCategoryChecker):
    name = 'network'
    token = tokens.AuthorizationToken.NETWORK
    scope = TEMPLATE_SPEC
    fields = [
        ('domain', 'devices', 'interfaces'),
        ('networks',),
    ]


class ComputeChecker(FieldCategoryChecker):
    """ CPU topology, and memory & resource requests/limits. """
    name = 'compute'
    token = tokens.AuthorizationToken.COMPUTE
    scope = TEMPLATE_SPEC
    fields = [
        ('domain', 'cpu'),
        ('domain', 'resources'),
    ]


class DevicesChecker(FieldCategoryChecker):
    """
    Devices other than disks, interfaces, filesystems.

    Those are covered by storage & network, and are not included here.
    """
    name = 'devices'
    token = tokens.AuthorizationToken.DEVICES
    scope = TEMPLATE_SPEC
    fields = [
        ('domain', 'devices', 'gpus'),
        ('domain', 'devices', 'hostDevices'),
        ('domain', 'devices', 'watchdog'),
        ('domain', 'devices', 'tpm'),
        ('domain', 'devices', 'inputs'),
    ]


class LifecycleChecker(FieldCategoryChecker):
    """
    Starting & stopping: ``spec.running`` or ``spec.runStrategy``.

    They are mutually exclusive in KubeVirt, so both belong to one category:
    switching from one to another is a single lifecycle change.
    """
    name = 'lifecycle'
    token = tokens.AuthorizationToken.LIFECYCLE
    fields = [
        ('spec', 'running'),
        ('spec', 'runStrategy'),
    ]


class CdromMediaChecker(FieldCategoryChecker):
    """
    CD-ROM media operations: inject, eject, swap -- in the existing drives only.

    The media are the hotpluggable volumes bound by name to the CD-ROM disks.
    Adding or removing the CD-ROM drives (the disks) is not a media operation:
    it requires the storage permissions. In that case, this checker does not
    report the changes at all, so that the storage checker sees all of them.
    """
    name = 'cdrom-media'
    token = tokens.AuthorizationToken.CDROM_MEDIA
    superset = tokens.AuthorizationToken.STORAGE
    scope = TEMPLATE_SPEC

    def has_changed(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
        if not self.in_scope(old, new):
            return False

        # Changed drives are beyond the media operations. Leave them to the storage checker.
        if not dicts.semantic_equal(get_cdrom_disks(old), get_cdrom_disks(new), CDROM_DISKS):
            return False

        return not dicts.semantic_equal(get_cdrom_media(old), get_cdrom_media(new), CDROM_MEDIA)

    def neutralize(self, old: MutableMapping[str, Any], new: MutableMapping[str, Any]) -> None:
        if not self.in_scope(old, new):
            return

        # The drives are never neutralized: only the media in them.
        names = get_cdrom_media_names(old) | get_cdrom_media_names(new)
        for body in [old, new]:
            volumes = dicts.resolve(body, CDROM_MEDIA, None)
            if isinstance(volumes, list):
                filtered = [volume for volume in volumes if volume.get('name') not in names]
                dicts.ensure(body, CDROM_MEDIA, filtered)


def get_cdrom_disks(body: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    disks = dicts.resolve(body, CDROM_DISKS, None) or []
    return [disk for disk in disks if isinstance(disk, Mapping) and disk.get('cdrom') is not None]


def get_cdrom_media(body: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    """ Get the hotpluggable volumes bound to the CD-ROM disks, in their original order. """
    drive_names = {disk.get('name') for disk in get_cdrom_disks(body)}
    volumes = dicts.resolve(body, CDROM_MEDIA, None) or []
    return [
        volume for volume in volumes
        if isinstance(volume, Mapping)
        if volume.get('name') in drive_names
        if is_hotpluggable(volume)
    ]


def get_cdrom_media_names(body: Mapping[str, Any]) -> Set[str]:
    return {volume['name'] for volume in get_cdrom_media(body)}


def is_hotpluggable(volume: Mapping[str, Any]) -> bool:
    # Only these volume sources can be hotplugged in KubeVirt.
    return (
        dicts.resolve(volume, 'dataVolume.hotpluggable', False) is True or
        dicts.resolve(volume, 'persistentVolumeClaim.hotpluggable', False) is True
    )


def validate_order(checkers: Iterable[FieldCategoryChecker]) -> None:
    """
    Ensure that the checkers can work as a pipeline.

    Every token is checked only once, and the subset checkers go before
    their superset checkers (if those are present in the pipeline at all).
    """
    seen: Set[tokens.AuthorizationToken] = set()
    for checker in checkers:
        if checker.token in seen:
            raise ValueError(f"The checker token is used twice: {checker.token}")
        if checker.token == tokens.AuthorizationToken.FULL_ADMIN:
            raise ValueError(f"The full-admin token cannot be used for fields: {checker!r}")
        if checker.superset is not None and checker.superset in seen:
            raise ValueError(f"The subset checker {checker!r} must go before "
                             f"its superset checker {checker.superset}.")
        seen.add(checker.token)


# IMPORTANT: The order matters for hierarchical permissions (subset before superset).
DEFAULT_CHECKERS: Tuple[FieldCategoryChecker, ...] = (

    # Independent permissions (no hierarchy, can go in any order).
    NetworkChecker(),
    ComputeChecker(),
    DevicesChecker(),
    LifecycleChecker(),

    # Hierarchical permissions.
    CdromMediaChecker(),  # subset: CD-ROM media only.
    StorageChecker(),  # superset: all storage, including CD-ROMs.
)
