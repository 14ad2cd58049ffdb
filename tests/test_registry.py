"""Test the playlist registry"""

import pytest

from conftest import USER_ID, flush, open_session, playlist_record, track_record, tracks_body
from qobuz_sync.core.events import EventTypes
from qobuz_sync.qobuz.dispatcher import (
    RESOURCE_ADD_FAVORITE,
    RESOURCE_CREATE_PLAYLIST,
    RESOURCE_DELETE_PLAYLIST,
    RESOURCE_FEATURED_PLAYLISTS,
    RESOURCE_GET_PLAYLIST,
    RESOURCE_UPDATE_PLAYLIST,
    RESOURCE_USER_FAVORITES,
    RESOURCE_USER_PLAYLISTS,
)
from qobuz_sync.qobuz.models import PlaylistKind, PlaylistState


def playlist_body(playlist_id, track_ids, name="Playlist"):
    body = playlist_record(playlist_id, name)
    body['tracks'] = tracks_body(*[track_record(t) for t in track_ids])
    return body


async def reply_refreshes(dispatcher, contents):
    """Answer every outstanding playlist/get call from a {playlist_id: track ids} map"""
    for call in dispatcher.calls_for(RESOURCE_GET_PLAYLIST):
        if not call.done:
            playlist_id = int(call.params['playlist_id'])
            dispatcher.reply(call, playlist_body(playlist_id, contents.get(playlist_id, [])))
    await flush()


async def load_user_data(service, dispatcher, user=None, featured=None, favorites=(), contents=None):
    open_session(service)
    service.registry.retrieve_user_data()

    dispatcher.reply(dispatcher.last(RESOURCE_FEATURED_PLAYLISTS), {'playlists': tracks_body(*(featured or []))})
    dispatcher.reply(dispatcher.last(RESOURCE_USER_PLAYLISTS), {'playlists': tracks_body(*(user or []))})
    dispatcher.reply(
        dispatcher.last(RESOURCE_USER_FAVORITES),
        {'tracks': tracks_body(*[track_record(t) for t in favorites])}
    )
    await flush()
    await reply_refreshes(dispatcher, contents or {})


class TestRetrieval:
    """Test collection fetches"""

    @pytest.mark.asyncio
    async def test_retrieve_user_data(self, service, dispatcher):
        changes = []
        service.events.on(EventTypes.PLAYLISTS_CHANGED, changes.append)

        open_session(service)
        service.registry.retrieve_user_data()

        featured_call = dispatcher.last(RESOURCE_FEATURED_PLAYLISTS)
        assert featured_call.params == {'type': 'editor-picks', 'user_id': USER_ID}
        assert featured_call.requires_auth
        assert dispatcher.last(RESOURCE_USER_FAVORITES).params == {'type': 'tracks', 'user_id': USER_ID}
        assert dispatcher.last(RESOURCE_USER_PLAYLISTS).params == {'user_id': USER_ID}
        assert len(service.tasks.active_tasks()) == 3

        dispatcher.reply(featured_call, {'playlists': tracks_body(playlist_record(1, "Editor", owner_id="qobuz"))})
        dispatcher.reply(
            dispatcher.last(RESOURCE_USER_PLAYLISTS),
            {'playlists': tracks_body(playlist_record(7, "Mine"), playlist_record(8, "Theirs", owner_id="x"))}
        )
        dispatcher.reply(
            dispatcher.last(RESOURCE_USER_FAVORITES),
            {'tracks': tracks_body(track_record(50), track_record(51, streamable=False))}
        )
        await flush()

        assert service.tasks.active_tasks() == []
        refreshed = sorted(int(c.params['playlist_id']) for c in dispatcher.calls_for(RESOURCE_GET_PLAYLIST))
        assert refreshed == [1, 7, 8]
        assert len(service.registry.pending) == 3
        assert service.registry.get(7).state == PlaylistState.POPULATING

        await reply_refreshes(dispatcher, {1: [10, 11], 7: [1, 2], 8: [3]})

        assert not service.registry.pending
        assert service.playlist_membership(7) == ["1", "2"]
        assert service.registry.get(7).state == PlaylistState.POPULATED
        assert [t.remote_id for t in service.registry.get(7).tracks] == ["1", "2"]
        assert [p.id for p in service.list_playlists(PlaylistKind.FEATURED)] == [1]
        assert not service.registry.get(1).editable
        assert service.registry.get(7).editable
        assert not service.registry.get(8).editable
        assert [t.remote_id for t in service.favorites()] == ["50"]
        assert service.registry.favorites.member_track_ids == ["50", "51"]
        assert changes

    @pytest.mark.asyncio
    async def test_refetch_replaces_partition(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7), playlist_record(8)])

        service.registry.retrieve_user_playlists()
        dispatcher.reply(dispatcher.last(RESOURCE_USER_PLAYLISTS), {'playlists': tracks_body(playlist_record(8))})
        await flush()

        assert [p.id for p in service.list_playlists(PlaylistKind.USER_OWNED)] == [8]

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_membership(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1, 2]})

        service.refresh(7)
        dispatcher.fail(dispatcher.last(RESOURCE_GET_PLAYLIST))
        await flush()

        assert service.playlist_membership(7) == ["1", "2"]
        assert service.registry.get(7).state == PlaylistState.POPULATED
        assert [t.remote_id for t in service.registry.get(7).tracks] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_populating_playlist_shown_empty(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1, 2]})

        service.refresh(7)
        playlist = service.registry.get(7)
        assert playlist.state == PlaylistState.POPULATING
        assert playlist.tracks == []
        assert service.playlist_membership(7) == ["1", "2"]

        await reply_refreshes(dispatcher, {7: [3]})

        assert [t.remote_id for t in playlist.tracks] == ["3"]
        assert service.playlist_membership(7) == ["3"]

    @pytest.mark.asyncio
    async def test_first_refresh_failure_leaves_unknown(self, service, dispatcher):
        open_session(service)
        service.registry.retrieve_user_playlists()
        dispatcher.reply(dispatcher.last(RESOURCE_USER_PLAYLISTS), {'playlists': tracks_body(playlist_record(7))})
        await flush()

        dispatcher.reply(dispatcher.last(RESOURCE_GET_PLAYLIST), {}, status=500)
        await flush()

        assert service.registry.get(7).state == PlaylistState.UNKNOWN
        assert not service.registry.pending

    @pytest.mark.asyncio
    async def test_cancelled_refresh_is_ignored(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1]})

        service.refresh(7)
        service.registry.pending.cancel_all()
        dispatcher.reply(dispatcher.last(RESOURCE_GET_PLAYLIST), playlist_body(7, [9, 9, 9]))
        await flush()

        assert service.playlist_membership(7) == ["1"]


class TestMembership:
    """Test membership edits"""

    @pytest.mark.asyncio
    async def test_set_membership_refused_while_refresh_pending(self, service, dispatcher):
        open_session(service)
        service.registry.retrieve_user_playlists()
        dispatcher.reply(dispatcher.last(RESOURCE_USER_PLAYLISTS), {'playlists': tracks_body(playlist_record(7))})
        await flush()
        assert service.registry.pending

        assert service.set_membership(7, ["1"]) is None
        assert dispatcher.calls_for(RESOURCE_UPDATE_PLAYLIST) == []

    @pytest.mark.asyncio
    async def test_add_then_remove_restores_membership(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1, 2]})

        pending = service.add_to_playlist(7, 3)
        update = dispatcher.last(RESOURCE_UPDATE_PLAYLIST)
        assert update.params == {'playlist_id': '7', 'track_ids': '1,2,3'}

        # Nothing changes locally until the server has answered
        assert service.playlist_membership(7) == ["1", "2"]

        dispatcher.reply(update, playlist_record(7))
        await pending
        await reply_refreshes(dispatcher, {7: [1, 2, 3]})
        assert service.playlist_membership(7) == ["1", "2", "3"]

        pending = service.remove_from_playlist(7, ["3"])
        update = dispatcher.last(RESOURCE_UPDATE_PLAYLIST)
        assert update.params['track_ids'] == '1,2'

        dispatcher.reply(update, playlist_record(7))
        await pending
        await reply_refreshes(dispatcher, {7: [1, 2]})

        assert service.playlist_membership(7) == ["1", "2"]
        assert service.tasks.active_tasks() == []

    @pytest.mark.asyncio
    async def test_remove_only_first_occurrence(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1, 2, 1]})

        service.remove_from_playlist(7, ["1"])
        assert dispatcher.last(RESOURCE_UPDATE_PLAYLIST).params['track_ids'] == '2,1'

    @pytest.mark.asyncio
    async def test_emptying_playlist_sends_empty_list(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1]})

        service.remove_from_playlist(7, ["1"])
        assert dispatcher.last(RESOURCE_UPDATE_PLAYLIST).params['track_ids'] == ''

    @pytest.mark.asyncio
    async def test_wrong_echo_is_failure(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)], contents={7: [1]})
        refreshes = len(dispatcher.calls_for(RESOURCE_GET_PLAYLIST))

        pending = service.add_to_playlist(7, 2)
        dispatcher.reply(dispatcher.last(RESOURCE_UPDATE_PLAYLIST), {'id': 8})
        await pending

        assert len(dispatcher.calls_for(RESOURCE_GET_PLAYLIST)) == refreshes
        assert service.playlist_membership(7) == ["1"]
        assert service.tasks.active_tasks() == []

    @pytest.mark.asyncio
    async def test_read_only_playlists_refused(self, service, dispatcher):
        await load_user_data(
            service, dispatcher,
            user=[playlist_record(8, owner_id="someone-else")],
            featured=[playlist_record(1)],
        )

        assert service.add_to_playlist(8, 5) is None
        assert service.set_membership(1, ["5"]) is None
        assert service.rename_playlist(1, "x") is None
        assert dispatcher.calls_for(RESOURCE_UPDATE_PLAYLIST) == []


class TestPlaylistMutations:
    """Test create, rename and delete"""

    @pytest.mark.asyncio
    async def test_create_uses_server_echo(self, service, dispatcher):
        await load_user_data(service, dispatcher)

        pending = service.create_playlist("Road")
        call = dispatcher.last(RESOURCE_CREATE_PLAYLIST)
        assert call.params == {'name': 'Road'}

        dispatcher.reply(call, playlist_record(99, "Road trip"))
        await pending

        playlist = service.registry.get(99)
        assert playlist.name == "Road trip"
        assert playlist.editable
        assert playlist.kind == PlaylistKind.USER_OWNED
        assert service.tasks.active_tasks() == []

    @pytest.mark.asyncio
    async def test_create_without_id_adds_nothing(self, service, dispatcher):
        await load_user_data(service, dispatcher)

        pending = service.create_playlist("Road")
        dispatcher.reply(dispatcher.last(RESOURCE_CREATE_PLAYLIST), {'status': 'error'})
        await pending

        assert service.list_playlists(PlaylistKind.USER_OWNED) == []

    @pytest.mark.asyncio
    async def test_create_reply_after_invalidation_discarded(self, service, dispatcher):
        await load_user_data(service, dispatcher)

        pending = service.create_playlist("Road")
        service.context.invalidate()
        dispatcher.reply(dispatcher.last(RESOURCE_CREATE_PLAYLIST), playlist_record(99, "Road"))
        await pending

        assert service.registry.get(99) is None

    @pytest.mark.asyncio
    async def test_rename_applies_echo(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7, "Old")])

        pending = service.rename_playlist(7, "New")
        call = dispatcher.last(RESOURCE_UPDATE_PLAYLIST)
        assert call.params == {'name': 'New', 'playlist_id': '7'}

        dispatcher.reply(call, playlist_record(7, "New (1)"))
        await pending

        assert service.registry.get(7).name == "New (1)"

    @pytest.mark.asyncio
    async def test_delete(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7), playlist_record(8)])

        pending = service.delete_playlist(7)
        assert dispatcher.last(RESOURCE_DELETE_PLAYLIST).params == {'playlist_id': '7'}
        dispatcher.reply(dispatcher.last(RESOURCE_DELETE_PLAYLIST), {'status': 'success'})
        await pending

        assert service.registry.get(7) is None
        assert service.registry.get(8) is not None

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_playlist(self, service, dispatcher):
        await load_user_data(service, dispatcher, user=[playlist_record(7)])

        pending = service.delete_playlist(7)
        dispatcher.reply(dispatcher.last(RESOURCE_DELETE_PLAYLIST), {'status': 'error'})
        await pending

        assert service.registry.get(7) is not None


class TestFavorites:
    """Test favorites edits"""

    @pytest.mark.asyncio
    async def test_add_favorite_refetches(self, service, dispatcher):
        await load_user_data(service, dispatcher, favorites=[1])

        pending = service.add_favorite(2)
        assert dispatcher.last(RESOURCE_ADD_FAVORITE).params == {'track_ids': '2'}
        dispatcher.reply(dispatcher.last(RESOURCE_ADD_FAVORITE), {'status': 'success'})
        await pending

        assert len(dispatcher.calls_for(RESOURCE_USER_FAVORITES)) == 2
        dispatcher.reply(
            dispatcher.last(RESOURCE_USER_FAVORITES),
            {'tracks': tracks_body(track_record(1), track_record(2))}
        )
        await flush()

        assert [t.remote_id for t in service.favorites()] == ["1", "2"]
        assert service.tasks.active_tasks() == []

    @pytest.mark.asyncio
    async def test_failed_favorite_edit_does_not_refetch(self, service, dispatcher):
        await load_user_data(service, dispatcher, favorites=[1])

        pending = service.remove_favorites([1])
        dispatcher.fail(dispatcher.calls[-1])
        await pending

        assert len(dispatcher.calls_for(RESOURCE_USER_FAVORITES)) == 1
        assert service.tasks.active_tasks() == []

    def test_not_logged_in_refused(self, service):
        assert service.add_favorite(1) is None
        assert service.create_playlist("x") is None
