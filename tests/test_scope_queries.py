import pytest
from sqlalchemy import event, inspect
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from named_scopes import InvalidScopeOptionError, ReadOnlyRecordError, Scope, is_readonly
from named_scopes.readonly import _reject_readonly_changes
from scoped_models import Author, Post


def _ids(records):
    return {record.id for record in records}


def _sql(scope, session):
    return str(scope.query(session).statement.compile(dialect=postgresql.dialect()))


def test_conditions_mapping_filters_rows(db_session, posts):
    result = Post.conditions(published=True).to_list(db_session)
    assert _ids(result) == {posts["published"], posts["hidden"]}


def test_conditions_with_positional_binds(db_session, posts):
    result = Post.conditions("published = ?", False).to_list(db_session)
    assert _ids(result) == {posts["unpublished"]}


def test_conditions_with_named_binds(db_session, posts):
    result = Post.where("title = :title", title="Hidden").to_list(db_session)
    assert _ids(result) == {posts["hidden"]}


def test_conditions_bind_count_mismatch_is_reported_at_execution(db_session, posts):
    scope = Post.conditions("published = ? AND visible = ?", True)
    with pytest.raises(InvalidScopeOptionError, match="expected 2 bind values, got 1"):
        scope.to_list(db_session)


def test_conditions_expressions_and_sequences(db_session, posts):
    result = Post.conditions(Post.published.is_(True), {"visible": True}).to_list(db_session)
    assert _ids(result) == {posts["published"]}

    result = Post.conditions(title=["Draft", "Hidden"]).to_list(db_session)
    assert _ids(result) == {posts["unpublished"], posts["hidden"]}


def test_conditions_on_relationship(db_session, posts):
    result = Post.conditions(author={"name": "Grace"}).to_list(db_session)
    assert _ids(result) == {posts["unpublished"]}


def test_conditions_without_arguments_filters_nothing(db_session, posts):
    assert Post.conditions().count(db_session) == 3


def test_later_conditions_replace_earlier_ones(db_session, posts):
    result = Post.conditions(published=True).conditions(published=False).to_list(db_session)
    assert _ids(result) == {posts["unpublished"]}


def test_combined_conditions_are_anded(db_session, posts):
    scope = Scope(Post, strategy="combine").published_only().visible_only()
    assert _ids(scope.to_list(db_session)) == {posts["published"]}


def test_all_scope(db_session, posts):
    assert _ids(Post.all().to_list(db_session)) == set(posts.values())
    result = Post.all({"conditions": {"published": False}}).to_list(db_session)
    assert _ids(result) == {posts["unpublished"]}


def test_order_limit_offset(db_session, posts):
    titles = [post.title for post in Post.order("title desc").to_list(db_session)]
    assert titles == ["Published", "Hidden", "Draft"]

    titles = [post.title for post in Post.order("title").limit(2).offset(1).to_list(db_session)]
    assert titles == ["Hidden", "Published"]


def test_order_accepts_expressions_and_raw_sql(db_session, posts):
    titles = [post.title for post in Post.order(Post.published, "title").to_list(db_session)]
    assert titles == ["Draft", "Hidden", "Published"]


def test_limit_rejects_non_integers(db_session, posts):
    with pytest.raises(InvalidScopeOptionError, match="expected an integer"):
        Post.limit("many").to_list(db_session)


def test_with_eagerly_loads_relations(db_session, posts):
    scope = Post.with_("author", "comments")
    assert scope.options == {"include": ["author", "comments"]}

    post = scope.conditions(id=posts["published"]).one(db_session)
    state = inspect(post)
    assert "author" not in state.unloaded
    assert "comments" not in state.unloaded
    assert post.author.name == "Ada"
    assert [comment.body for comment in post.comments] == ["First!", "Nice post"]


def test_include_nested_relations(db_session, posts):
    author = Author.include({"posts": "comments"}).conditions(name="Ada").one(db_session)
    assert "posts" not in inspect(author).unloaded
    published = next(post for post in author.posts if post.id == posts["published"])
    assert "comments" not in inspect(published).unloaded


def test_include_rejects_columns(db_session, posts):
    with pytest.raises(InvalidScopeOptionError, match="expected a relationship"):
        Post.include("title").to_list(db_session)


def test_joins_filter_through_relationship(db_session, posts):
    result = Post.joins("author").conditions(Author.name == "Ada").to_list(db_session)
    assert _ids(result) == {posts["published"], posts["hidden"]}


def test_select_loads_only_named_columns(db_session, posts):
    post = Post.select("title").conditions(id=posts["published"]).first(db_session)
    state = inspect(post)
    assert "title" not in state.unloaded
    assert "published" in state.unloaded


def test_select_unknown_attribute_fails_at_execution(db_session, posts):
    scope = Post.select("subtitle")
    with pytest.raises(InvalidScopeOptionError, match="'subtitle' is not an attribute of Post"):
        scope.to_list(db_session)


def test_group_and_having_sql(db_session):
    sql = _sql(Post.group("author_id").having("count(*) > 1"), db_session)
    assert "GROUP BY posts.author_id" in sql
    assert "HAVING count(*) > 1" in sql


def test_lock_sql(db_session):
    assert "FOR UPDATE" in _sql(Post.lock(), db_session)
    assert "FOR UPDATE" not in _sql(Post.lock(False), db_session)
    assert "FOR UPDATE NOWAIT" in _sql(Post.lock(nowait=True), db_session)


def test_from_reads_named_table(db_session, posts):
    assert "posts_archive" in _sql(Post.from_("posts_archive"), db_session)

    result = getattr(Post, "from")("posts").conditions(published=False).to_list(db_session)
    assert _ids(result) == {posts["unpublished"]}


def test_unknown_option_fails_at_execution(db_session):
    scope = Post.all({"colour": "red"})
    with pytest.raises(InvalidScopeOptionError, match="unknown option"):
        scope.query(db_session)


def test_readonly_records_cannot_be_persisted(db_session, posts):
    post = Post.readonly().conditions(id=posts["published"]).first(db_session)
    assert is_readonly(post)

    post.title = "Changed"
    with pytest.raises(ReadOnlyRecordError):
        db_session.flush()


def test_readonly_false_records_can_be_persisted(db_session, posts):
    post = Post.readonly(False).conditions(id=posts["published"]).first(db_session)
    assert not is_readonly(post)

    post.title = "Changed"
    db_session.flush()
    db_session.expunge_all()
    assert Post.conditions(title="Changed").count(db_session) == 1


def test_readonly_records_cannot_be_deleted(db_session, posts):
    post = Post.readonly().conditions(id=posts["unpublished"]).one(db_session)
    db_session.delete(post)
    with pytest.raises(ReadOnlyRecordError):
        db_session.flush()


def test_count_exists_and_iteration(db_session, posts):
    scope = Post.using(db_session).conditions(visible=True)
    assert scope.count() == 2
    assert scope.exists() is True
    assert Post.using(db_session).conditions(title="Missing").exists() is False
    assert _ids(scope) == {posts["published"], posts["unpublished"]}


def test_plain_load_after_readonly_load_is_writable(db_session, posts):
    readonly_post = Post.readonly().conditions(id=posts["published"]).first(db_session)
    post = Post.conditions(id=posts["published"]).first(db_session)

    # One instance per row within a session.
    assert post is readonly_post
    assert not is_readonly(post)

    post.title = "Changed"
    db_session.flush()


def test_placeholder_without_binds_fails_at_execution(db_session, posts):
    with pytest.raises(InvalidScopeOptionError, match="expected 1 bind values, got 0"):
        Post.conditions(["published = ?"]).to_list(db_session)
    with pytest.raises(InvalidScopeOptionError, match="expected 1 bind values, got 0"):
        Post.conditions("published = ?").to_list(db_session)


def test_readonly_guard_attaches_on_first_readonly_load(db_session, posts):
    Post.readonly().first(db_session)
    assert event.contains(Session, "before_flush", _reject_readonly_changes)
