import typing

ProfileId = typing.NewType("ProfileId", str)

LevelId = typing.NewType("LevelId", int)
ExerciseIndex = typing.NewType("ExerciseIndex", int)
BadgeId = typing.NewType("BadgeId", str)
StorageKey = typing.NewType("StorageKey", str)
IsoTimestamp = typing.NewType("IsoTimestamp", str)
